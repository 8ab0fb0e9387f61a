"""
User preferences and network status the orchestrator routes on.

Both are handed to the AIEngine when it is built. Preference changes go
through PreferencesChannel, which tells every subscriber what changed, so
nothing has to poll a global settings object.
"""
import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, List, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisPreferences:
    cloud_enabled: bool = False
    wifi_only: bool = True
    api_key: str = ""


PreferencesListener = Callable[[AnalysisPreferences, AnalysisPreferences], None]


class PreferencesChannel:
    """Holds the current preferences and notifies listeners on change."""

    def __init__(self, initial: AnalysisPreferences = AnalysisPreferences()):
        self._current = initial
        self._listeners: List[PreferencesListener] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> AnalysisPreferences:
        return self._current

    def subscribe(self, listener: PreferencesListener) -> None:
        """listener(old, new) is called after every effective change."""
        self._listeners.append(listener)

    def update(self, **changes) -> AnalysisPreferences:
        with self._lock:
            old = self._current
            new = replace(old, **changes)
            if new == old:
                return old
            self._current = new
        logger.info(
            "Analysis preferences changed: cloud_enabled=%s wifi_only=%s",
            new.cloud_enabled, new.wifi_only,
        )
        for listener in list(self._listeners):
            listener(old, new)
        return new


@dataclass(frozen=True)
class NetworkStatus:
    connected: bool
    on_wifi: bool


class ConnectivityMonitor(Protocol):
    def status(self) -> NetworkStatus:
        ...


class StaticConnectivity:
    """Connectivity reported by configuration (or set directly in tests)."""

    def __init__(self, connected: bool = True, on_wifi: bool = True):
        self._status = NetworkStatus(connected=connected, on_wifi=on_wifi)

    def status(self) -> NetworkStatus:
        return self._status

    def set_status(self, connected: bool, on_wifi: bool) -> None:
        self._status = NetworkStatus(connected=connected, on_wifi=on_wifi)

"""Tests for the command-line entrypoint.

Imports inside the command functions are lazy, so we patch them at their
source module paths.
"""
import json
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from babycare.__main__ import main
from babycare.analysis.records import DateRange
from babycare.store.sql import SqlRecordStore


class TestSeed:
    def test_writes_two_weeks(self, engine):
        with patch("babycare.db.engine.get_engine", return_value=engine):
            main(["seed", "baby-1", "--days", "14"])

        store = SqlRecordStore(engine)
        window = DateRange(datetime.now() - timedelta(days=20), datetime.now())
        assert len(store.get_sleep_records("baby-1", window)) == 14 * 3
        assert len(store.get_feeding_records("baby-1", window)) == 14 * 5
        assert len(store.get_activities("baby-1", window)) == 14 * 3

    def test_same_seed_same_history(self, engine):
        with patch("babycare.db.engine.get_engine", return_value=engine):
            main(["seed", "a", "--random-seed", "3"])
            main(["seed", "b", "--random-seed", "3"])

        store = SqlRecordStore(engine)
        window = DateRange(datetime.now() - timedelta(days=20), datetime.now())
        starts_a = [r.start_time for r in store.get_sleep_records("a", window)]
        starts_b = [r.start_time for r in store.get_sleep_records("b", window)]
        assert starts_a == starts_b


class TestAnalyzeCommands:
    @pytest.fixture
    def ai_engine(self):
        ai_engine = MagicMock()
        ai_engine.analyze_sleep = AsyncMock(return_value={"pattern_type": "highly_regular"})
        ai_engine.analyze_routine = AsyncMock(return_value={"pattern_type": "evolving"})
        ai_engine.predict_next_sleep = AsyncMock(return_value={"subject_id": "baby-1"})
        return ai_engine

    def test_sleep_prints_json(self, ai_engine, capsys):
        with patch("babycare.insights.factory.build_ai_engine", return_value=ai_engine):
            main(["sleep", "baby-1", "--days", "7"])

        assert json.loads(capsys.readouterr().out) == {"pattern_type": "highly_regular"}
        subject_id, date_range = ai_engine.analyze_sleep.await_args.args
        assert subject_id == "baby-1"
        assert date_range.days == 7

    def test_routine(self, ai_engine, capsys):
        with patch("babycare.insights.factory.build_ai_engine", return_value=ai_engine):
            main(["routine", "baby-1"])
        assert json.loads(capsys.readouterr().out)["pattern_type"] == "evolving"

    def test_predict(self, ai_engine, capsys):
        with patch("babycare.insights.factory.build_ai_engine", return_value=ai_engine):
            main(["predict", "baby-1"])
        ai_engine.predict_next_sleep.assert_awaited_once_with("baby-1")


class TestServe:
    def test_runs_uvicorn(self):
        with patch("uvicorn.run") as mock_run:
            main(["serve", "--port", "9000"])
        mock_run.assert_called_once_with("babycare.api.main:app", host="127.0.0.1", port=9000)

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])

"""
Prompt builders for the three cloud analysis operations.

Each builder renders the anonymized payload plus the exact JSON shape the
reply must have. The model is told to answer with that JSON object only;
cloud.convert turns it back into the same result types local analysis
produces.
"""
import json
from typing import Any, Dict

from babycare.analysis.records import ActivityType
from babycare.analysis.routine import ActivityCategory, RoutinePatternType, RoutineTrend
from babycare.analysis.sleep_pattern import ENVIRONMENTAL_FACTORS, SleepPatternType, SleepTrend

SYSTEM_PROMPT = (
    "You are a paediatric sleep and routine analyst. You receive anonymized "
    "baby-care logs (timestamps and numbers only, local time) and return a "
    "single JSON object exactly matching the requested schema. No prose, no "
    "markdown fences. Recommendations are short, practical, and addressed to "
    "the parent."
)


_FACTOR_CHOICES = " | ".join(f'"{f}"' for f in ENVIRONMENTAL_FACTORS)


def _choices(enum_cls, exclude=()) -> str:
    return " | ".join(f'"{m.value}"' for m in enum_cls if m not in exclude)


def _render(title: str, task: str, payload: Dict[str, Any], schema: str) -> str:
    lines = [
        f"## {title}\n",
        task,
        "",
        "### Data",
        "```json",
        json.dumps(payload, indent=2),
        "```",
        "",
        "### Reply with JSON of this shape",
        schema.strip(),
    ]
    return "\n".join(lines)


def build_sleep_analysis_prompt(payload: Dict[str, Any]) -> str:
    schema = f"""
{{
  "sleepPatternType": {_choices(SleepPatternType, exclude=(SleepPatternType.INSUFFICIENT,))},
  "regularityScore": <integer 0-100>,
  "averageSleepDurationHours": <number>,
  "sleepEfficiency": <number 0-1>,
  "environmentalFactors": [
    {{"factor": {_FACTOR_CHOICES}, "impact": <number -1..1>, "confidence": <number 0-1>}}
  ],
  "sleepTrend": {_choices(SleepTrend)},
  "recommendations": [<string>],
  "confidenceScore": <number 0-1>
}}
"""
    return _render(
        "Sleep Analysis",
        "Classify how regular this baby's sleep is, estimate how room conditions "
        "affect it, and describe the recent trend.",
        payload,
        schema,
    )


def build_routine_analysis_prompt(payload: Dict[str, Any]) -> str:
    schema = f"""
{{
  "routinePatternType": {_choices(RoutinePatternType, exclude=(RoutinePatternType.INSUFFICIENT,))},
  "regularityScore": <integer 0-100>,
  "typicalPatterns": [
    {{"activities": [{_choices(ActivityType)}], "averageDurationMinutes": <number>,
      "frequencyPerDay": <number>, "regularityScore": <integer 0-100>}}
  ],
  "activityDistribution": [
    {{"category": {_choices(ActivityCategory)}, "percentage": <number 0-100>,
      "averageDurationMinutes": <number>, "averageIntervalHours": <number or null>}}
  ],
  "routineTrend": {_choices(RoutineTrend)},
  "recommendations": [<string>],
  "confidenceScore": <number 0-1>
}}
"""
    return _render(
        "Routine Analysis",
        "Find the repeating sequences in this baby's day, how time is split "
        "between activities, and how consistent the routine is.",
        payload,
        schema,
    )


def build_prediction_prompt(payload: Dict[str, Any]) -> str:
    schema = f"""
{{
  "nextSleep": {{"earliestStartMinutes": <number>, "latestStartMinutes": <number>,
                 "expectedDurationMinutes": <number>, "durationVarianceMinutes": <number>,
                 "confidence": <number 0-1>, "predictsWakeUp": <bool>}} or null,
  "nextFeeding": {{"earliestStartMinutes": <number>, "latestStartMinutes": <number>,
                   "expectedDurationMinutes": <number>, "confidence": <number 0-1>}} or null,
  "nextActivity": {{"activityType": {_choices(ActivityType)},
                    "earliestStartMinutes": <number>, "latestStartMinutes": <number>,
                    "expectedDurationMinutes": <number>, "confidence": <number 0-1>}} or null,
  "patternType": {_choices(SleepPatternType)},
  "recommendations": [<string>],
  "confidenceScore": <number 0-1>
}}
"""
    return _render(
        "Next Event Prediction",
        "Predict the next sleep (or wake-up, if the last sleep has not ended), "
        "feed and activity. All *StartMinutes values are minutes after "
        "referenceTime.",
        payload,
        schema,
    )

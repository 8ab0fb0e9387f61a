"""
Command-line entrypoint.

Usage:
    python -m babycare sleep baby-1 --days 14     # sleep analysis as JSON
    python -m babycare routine baby-1             # routine analysis as JSON
    python -m babycare predict baby-1             # next sleep/feed/activity
    python -m babycare seed baby-1                # write two weeks of demo logs
    python -m babycare serve --port 8000          # run the HTTP API
"""
import argparse
import asyncio
import json
import logging
import random
from datetime import datetime, timedelta

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _print(result) -> None:
    from fastapi.encoders import jsonable_encoder

    print(json.dumps(jsonable_encoder(result), indent=2))


async def _analyze(command: str, subject_id: str, days: int) -> None:
    from babycare.analysis.records import DateRange
    from babycare.config import get_settings
    from babycare.insights.factory import build_ai_engine

    engine = build_ai_engine(get_settings())
    if command == "sleep":
        _print(await engine.analyze_sleep(subject_id, DateRange.trailing(days)))
    elif command == "routine":
        _print(await engine.analyze_routine(subject_id, DateRange.trailing(days)))
    else:
        _print(await engine.predict_next_sleep(subject_id))


def _seed(subject_id: str, days: int, seed: int) -> None:
    """Write a plausible history: night sleep, two naps, 3-hourly feeds, play and bath."""
    from babycare.analysis.records import (
        ActivityRecord,
        ActivityType,
        FeedingRecord,
        Interruption,
        SleepRecord,
    )
    from babycare.config import get_settings
    from babycare.db.engine import get_engine
    from babycare.store.sql import SqlRecordStore

    rng = random.Random(seed)
    store = SqlRecordStore(get_engine(get_settings().database_url))
    today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)

    def jitter(minutes: int = 15) -> timedelta:
        return timedelta(minutes=rng.randint(-minutes, minutes))

    written = 0
    for offset in range(days, 0, -1):
        day = today - timedelta(days=offset)
        bedtime = day + timedelta(hours=19, minutes=30) + jitter()
        waking = bedtime + timedelta(hours=4) + jitter(30)
        store.add_sleep(subject_id, SleepRecord(
            id="", start_time=bedtime, end_time=bedtime + timedelta(hours=11) + jitter(),
            interruptions=[Interruption(waking, waking + timedelta(minutes=rng.randint(5, 25)))],
        ))
        for nap_hour in (9.5, 13.5):
            start = day + timedelta(hours=nap_hour) + jitter()
            store.add_sleep(subject_id, SleepRecord(
                id="", start_time=start, end_time=start + timedelta(minutes=rng.randint(45, 100)),
            ))
        for feed_hour in range(7, 20, 3):
            start = day + timedelta(hours=feed_hour) + jitter(10)
            store.add_feeding(subject_id, FeedingRecord(
                id="", start_time=start, end_time=start + timedelta(minutes=rng.randint(15, 30)),
                amount_ml=float(rng.randint(120, 180)),
            ))
        for activity_type, hour, minutes in (
            (ActivityType.PLAY, 11, 40),
            (ActivityType.TUMMY_TIME, 16, 20),
            (ActivityType.BATH, 18.75, 20),
        ):
            start = day + timedelta(hours=hour) + jitter(10)
            store.add_activity(subject_id, ActivityRecord(
                id="", activity_type=activity_type, start_time=start,
                end_time=start + timedelta(minutes=minutes),
            ))
        written += 3 + 5 + 3
    logger.info("Seeded %d records for %s over %d days", written, subject_id, days)


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="babycare", description="Baby-care analytics")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("sleep", "routine", "predict"):
        cmd = sub.add_parser(name)
        cmd.add_argument("subject_id")
        cmd.add_argument("--days", type=int, default=14, help="Days of history to analyze")

    seed = sub.add_parser("seed")
    seed.add_argument("subject_id")
    seed.add_argument("--days", type=int, default=14)
    seed.add_argument("--random-seed", type=int, default=7)

    serve = sub.add_parser("serve")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)

    if args.command == "seed":
        _seed(args.subject_id, args.days, args.random_seed)
    elif args.command == "serve":
        import uvicorn

        uvicorn.run("babycare.api.main:app", host=args.host, port=args.port)
    else:
        asyncio.run(_analyze(args.command, args.subject_id, args.days))


if __name__ == "__main__":
    main()

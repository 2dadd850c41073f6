import argparse
import json
import signal
import sys
from datetime import date
from pathlib import Path
from threading import Event
from typing import Optional

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run the systematic plan execution scheduler outside the API process."
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--business-date",
        type=date.fromisoformat,
        help=(
            "Run a single business day (YYYY-MM-DD), today or later in the scheduler timezone, "
            "and print its report. Past days are rejected; overdue installments are caught up "
            "by the next run."
        ),
    )
    mode.add_argument(
        "--forever",
        action="store_true",
        help="Keep running one business day after another until interrupted.",
    )
    args = parser.parse_args(argv)

    from src.api.observability import configure_logging
    from src.api.routers import plans, plans_config
    from src.core.common.clock import SystemClock, business_date

    if args.business_date is not None:
        today = business_date(SystemClock(), plans_config.build_retry_policy().tz)
        if args.business_date < today:
            parser.error(f"--business-date {args.business_date} is before today ({today})")

    configure_logging()
    stop_event = Event()
    scheduler = plans.build_scheduler(clock=SystemClock(stop_event=stop_event))

    if args.forever:
        signal.signal(signal.SIGINT, lambda *_: stop_event.set())
        signal.signal(signal.SIGTERM, lambda *_: stop_event.set())
        scheduler.run_forever(stop_event)
        return 0

    report = scheduler.run_business_day(args.business_date)
    print(json.dumps(report.model_dump(mode="json"), indent=2))
    return 1 if report.interrupted else 0


if __name__ == "__main__":
    raise SystemExit(main())

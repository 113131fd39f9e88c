#!/usr/bin/env python3
import sys
import asyncio
import logging
import argparse
import json

# Add project root to path
sys.path.insert(0, ".")

from core.config import DAY_NAMES
from core.logging import setup_json_logging
from schedule.schedule_table import describe_day
from service.scheduled_fetch_service import run_scheduled_fetch

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run the scheduled data fetch for one seller account")
    parser.add_argument("--user", help="User id")
    parser.add_argument("--region", help="Region (NA, EU, FE)")
    parser.add_argument("--country", help="Marketplace country code (e.g., US, UK, JP)")
    parser.add_argument("--day", type=int, choices=range(7), metavar="0-6",
                        help="Override day of week (0=Sunday .. 6=Saturday, UTC)")
    parser.add_argument("--show-schedule", action="store_true",
                        help="Print the jobs scheduled for --day (or every day) and exit")
    parser.add_argument("--pretty", action="store_true", help="Pretty print JSON output")

    args = parser.parse_args()

    setup_json_logging()
    indent = 2 if args.pretty else None

    if args.show_schedule:
        days = [args.day] if args.day is not None else range(len(DAY_NAMES))
        print(json.dumps({DAY_NAMES[d]: describe_day(d) for d in days}, indent=indent))
        return 0

    if not args.user or not args.region or not args.country:
        parser.error("--user, --region and --country are required unless --show-schedule is given")

    result = asyncio.run(run_scheduled_fetch(args.user, args.region, args.country, args.day))
    print(json.dumps(result.model_dump(), indent=indent, default=str))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())

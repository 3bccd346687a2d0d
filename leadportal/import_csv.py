"""
Import customers from a CSV file straight into the database.

Usage:
    python -m leadportal.import_csv customers.csv              # import + score
    python -m leadportal.import_csv customers.csv --no-predict # import only

Uses the same parsing, validation and per-row insert as POST /customers/upload-csv.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from leadportal import config
from leadportal.autopredict import AutoPredictService
from leadportal.cache import PredictionCache
from leadportal.csv_import import parse_and_validate
from leadportal.database import async_session, init_db
from leadportal.errors import CSVParseError, RowValidationError
from leadportal.repository import bulk_create_customers
from scoring.gateway import ScoringGateway


async def run_import(
    csv_path: str,
    predict: bool = True,
    gateway: Optional[ScoringGateway] = None,
) -> int:
    print("Initialising database schema ...")
    await init_db()

    data = Path(csv_path).read_bytes()
    try:
        validation = parse_and_validate(data)
    except CSVParseError as e:
        print(f"Error: {e}")
        return 1

    if not validation["success"]:
        print(f"Error: {validation['error']}")
        return 1

    valid = validation["data"]["valid"]
    invalid = validation["data"]["invalid"]
    print(f"{validation['data']['total_records']} records: {len(valid)} valid, {len(invalid)} invalid")
    for item in invalid:
        print(f"  {RowValidationError(item['row'], item['errors'])}")

    if not valid:
        return 1

    async with async_session() as session:
        inserted = await bulk_create_customers(session, valid)

    print(f"Created {inserted['success_count']} customers, {inserted['failed_count']} failed")
    for item in inserted["failed"]:
        print(f"  row {item['row']}: {item['error']}")

    if predict and inserted["created"]:
        gateway = gateway or ScoringGateway(config.ML_SERVICE_URL, config.ML_API_TIMEOUT)
        service = AutoPredictService(PredictionCache(), gateway)
        try:
            health = await gateway.health_check()
            if health.get("status") != "OK":
                print("Scoring skipped: ML service unavailable")
                return 0
            summary = await service.score_many(c["id"] for c in inserted["created"])
        finally:
            await gateway.close()
        print(f"Scored {summary['success']}/{summary['total']} customers, {summary['failed']} failed")

    print("Import complete.")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Import customers from a CSV file")
    parser.add_argument("csv", help="path to the CSV file")
    parser.add_argument("--no-predict", action="store_true", help="skip scoring the imported customers")
    args = parser.parse_args()
    config.configure_logging()
    sys.exit(asyncio.run(run_import(args.csv, predict=not args.no_predict)))


if __name__ == "__main__":
    main()

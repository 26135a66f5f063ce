"""
Backfill vehicle driver assignment history.

Opens a current assignment for every vehicle that has a driver but no open
assignment row. ``--force`` closes existing open rows and opens fresh ones
for every vehicle with a driver; ``--dry`` only prints the diagnostics.

Usage:
    python -m vems.scripts.backfill_vehicle_assignments [--dry] [--force]
"""

import argparse
import asyncio
from vems.app.core.logging_config import configure_logging
from vems.app.db.session import AsyncSessionLocal
from vems.app.services.assignment_history import backfill_vehicle_assignments, BackfillReport


def print_report(report: BackfillReport) -> None:
    print("Vehicle assignment diagnostics")
    print(f"  Vehicles:                      {report.vehicles_total}")
    print(f"  Vehicles with a driver:        {report.vehicles_with_driver}")
    print(f"  Assignment rows:               {report.assignments_total}")
    print(f"  Vehicles with current row:     {report.vehicles_with_current}")
    print(f"  Vehicles to process:           {report.candidates}")
    if report.samples:
        print("  Sample:")
        for sample in report.samples:
            print(
                f"    vehicle {sample['vehicle_id']} ({sample['registration_number']})"
                f" -> driver {sample['driver_id']}"
            )

    if report.dry_run:
        print("ℹ️  Dry run, nothing written")
    elif report.candidates == 0:
        print("✅ Nothing to backfill")
    else:
        print(f"✅ Created {report.created} assignments, closed {report.closed}")


async def run(dry_run: bool, force: bool) -> BackfillReport:
    async with AsyncSessionLocal() as db:
        return await backfill_vehicle_assignments(db, dry_run=dry_run, force=force)


def main():
    parser = argparse.ArgumentParser(description="Backfill vehicle driver assignment history")
    parser.add_argument("--dry", action="store_true", help="Show what would be done without writing")
    parser.add_argument("--force", action="store_true", help="Recreate current assignments for every vehicle")
    args = parser.parse_args()

    configure_logging()
    print_report(asyncio.run(run(args.dry, args.force)))


if __name__ == "__main__":
    main()

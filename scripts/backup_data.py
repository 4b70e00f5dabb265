#!/usr/bin/env python3
"""
Back up, restore and prune gold price data.

Examples:
    python scripts/backup_data.py                      # last 30 days to JSON
    python scripts/backup_data.py --csv --days 7       # last 7 days to CSV
    python scripts/backup_data.py --restore backup/x.json
    python scripts/backup_data.py --clean              # delete backups older than 7 days
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gold_price_bot.config import settings
from gold_price_bot.db.backup import BackupService
from gold_price_bot.db.gateway import PriceGateway
from gold_price_bot.db.session import build_engine, build_session_factory
from gold_price_bot.logging_config import setup_logging


async def run(args) -> int:
    if args.clean:
        service = BackupService(gateway=None, backup_dir=args.backup_dir)
        deleted = service.clean_old_backups(args.keep_days)
        print(f"Deleted {deleted} old backup files")
        return 0

    engine = build_engine(settings.database_url)
    try:
        service = BackupService(PriceGateway(build_session_factory(engine)), args.backup_dir)

        if args.restore:
            if not await service.restore_from_backup(args.restore):
                print("Restore failed", file=sys.stderr)
                return 1
            print("Restore complete")
            return 0

        if args.format == "csv":
            path = await service.backup_to_csv(days=args.days, output=args.output)
        else:
            path = await service.backup_to_json(days=args.days, output=args.output)
    finally:
        await engine.dispose()

    if path is None:
        print("No records to back up")
    else:
        print(f"Backup written to {path}")
    return 0


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Gold price data backup tool")
    parser.add_argument("--days", type=int, default=30, help="Days of data to back up (default: 30)")
    parser.add_argument("--format", choices=["json", "csv"], default="json", help="Output format (default: json)")
    parser.add_argument("--csv", dest="format", action="store_const", const="csv", help="Shortcut for --format csv")
    parser.add_argument("--output", help="Output file name inside the backup directory")
    parser.add_argument("--backup-dir", default="backup", help="Backup directory (default: backup)")
    parser.add_argument("--restore", metavar="FILE", help="Restore rows from a JSON backup")
    parser.add_argument("--clean", action="store_true", help="Delete old backup files")
    parser.add_argument("--keep-days", type=int, default=7, help="Backups to keep when cleaning, in days (default: 7)")

    args = parser.parse_args()
    setup_logging(level=settings.log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())

"""Backup and restore of stored price rows."""

import csv
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from gold_price_bot.db.gateway import PriceGateway, PriceRecord
from gold_price_bot.db.models import MULTI_SOURCE_COLUMNS, GoldPrice

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"
MAX_BACKUP_ROWS = 10000

CSV_COLUMNS = [
    "id",
    "price",
    "created_at",
    "source",
    "currency",
    "time_period",
    *MULTI_SOURCE_COLUMNS,
]


def _row_to_dict(row: GoldPrice) -> dict:
    data = {
        "id": row.id,
        "price": str(row.price),
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "source": row.source,
        "currency": row.currency,
        "time_period": row.time_period,
    }
    for name in MULTI_SOURCE_COLUMNS:
        value = getattr(row, name)
        data[name] = str(value) if value is not None else None
    return data


def _record_from_dict(item: dict) -> PriceRecord:
    created_at = item.get("created_at")
    return PriceRecord(
        price=item["price"],
        source=item.get("source"),
        currency=item.get("currency") or "USD",
        time_period=item.get("time_period"),
        created_at=datetime.fromisoformat(created_at) if created_at else None,
        field_prices={
            name: item[name] for name in MULTI_SOURCE_COLUMNS if item.get(name) is not None
        },
    )


class BackupService:
    """Exports recent rows to JSON or CSV files and restores JSON backups."""

    def __init__(self, gateway: PriceGateway, backup_dir: str | Path = "backup"):
        self.gateway = gateway
        self.backup_dir = Path(backup_dir)

    def _backup_path(self, output: Optional[str], extension: str) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        filename = output or f"gold-prices-backup-{timestamp}.{extension}"
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        return self.backup_dir / filename

    async def _fetch_recent(self, days: int) -> tuple[datetime, datetime, list[GoldPrice]]:
        end = datetime.now(timezone.utc)
        start = end - timedelta(days=days)
        rows = await self.gateway.range(start, end, MAX_BACKUP_ROWS)
        return start, end, rows

    async def backup_to_json(self, days: int = 30, output: Optional[str] = None) -> Optional[Path]:
        """
        Write the last ``days`` days of rows to a JSON file with metadata.

        Returns:
            Path of the backup file, or None when there was nothing to back up
        """
        logger.info(f"Backing up the last {days} days of prices to JSON")
        start, end, rows = await self._fetch_recent(days)
        if not rows:
            logger.warning("No records found to back up")
            return None

        payload = {
            "metadata": {
                "export_time": datetime.now(timezone.utc).isoformat(),
                "record_count": len(rows),
                "date_range": {"start": start.isoformat(), "end": end.isoformat()},
                "version": BACKUP_VERSION,
            },
            "data": [_row_to_dict(row) for row in rows],
        }

        path = self._backup_path(output, "json")
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info(f"Backup written: {path} ({len(rows)} records)")
        return path

    async def backup_to_csv(self, days: int = 30, output: Optional[str] = None) -> Optional[Path]:
        """Write the last ``days`` days of rows to a CSV file."""
        logger.info(f"Backing up the last {days} days of prices to CSV")
        _, _, rows = await self._fetch_recent(days)
        if not rows:
            logger.warning("No records found to back up")
            return None

        path = self._backup_path(output, "csv")
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
            writer.writeheader()
            for row in rows:
                writer.writerow(_row_to_dict(row))

        logger.info(f"CSV backup written: {path} ({len(rows)} records)")
        return path

    async def restore_from_backup(self, backup_file: str | Path) -> bool:
        """Insert every row of a JSON backup in one batch."""
        path = Path(backup_file)
        logger.info(f"Restoring prices from {path}")

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            items = payload["data"]
            if not isinstance(items, list):
                raise ValueError("'data' is not a list")
            records = [_record_from_dict(item) for item in items]
        except (OSError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid backup file {path}: {e}")
            return False

        if not await self.gateway.insert_batch(records):
            logger.error("Restore failed")
            return False

        logger.info(f"Restored {len(records)} records")
        return True

    def clean_old_backups(self, days_to_keep: int = 7) -> int:
        """Delete backup files last modified more than ``days_to_keep`` days ago."""
        if not self.backup_dir.exists():
            return 0

        cutoff = time.time() - days_to_keep * 24 * 60 * 60
        deleted = 0
        for path in self.backup_dir.iterdir():
            if path.is_file() and path.stat().st_mtime < cutoff:
                try:
                    path.unlink()
                except OSError as e:
                    logger.error(f"Failed to delete old backup {path.name}: {e}")
                    continue
                deleted += 1
                logger.info(f"Deleted old backup {path.name}")

        logger.info(f"Backup cleanup done, {deleted} files deleted")
        return deleted

# market_dashboard/services/golden_dataset.py
"""
Golden dataset: durable last-known-good payload per data type.

Successful live fetches are written here at the `fresh` tier. Entries age
down the ladder fresh -> stale -> archived -> fallback -> deleted, one step
each time an expired entry is read or swept. The file is JSON on disk with a
sibling backup written before every overwrite.
"""

import asyncio
import json
import logging
import os
import shutil
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from pydantic import ValidationError

from market_dashboard.models.golden import GoldenEntry, GoldenTier

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"
DEFAULT_ACCEPTABLE_TIERS = (GoldenTier.FRESH, GoldenTier.STALE, GoldenTier.ARCHIVED)


def count_data_points(data: Any) -> int:
    """Rough size of a payload: list lengths at the top level and one level down"""
    if isinstance(data, list):
        return len(data)
    if not isinstance(data, dict):
        return 1 if data is not None else 0

    count = 1 if "current" in data else 0
    for value in data.values():
        if isinstance(value, list):
            count += len(value)
        elif isinstance(value, dict):
            count += sum(len(v) for v in value.values() if isinstance(v, list))
    return count


class GoldenDatasetService:
    """Disk-persisted fallback store with a tier ladder per data type"""

    def __init__(self, settings, clock: Callable[[], float] = time.time, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir or settings.data_dir)
        self.dataset_path = self.data_dir / "golden_dataset.json"
        self.backup_path = self.data_dir / "golden_dataset_backup.json"
        self.tier_windows = {
            GoldenTier.FRESH: settings.golden_ttl_fresh,
            GoldenTier.STALE: settings.golden_ttl_stale,
            GoldenTier.ARCHIVED: settings.golden_ttl_archived,
            GoldenTier.FALLBACK: settings.golden_ttl_fallback,
        }
        self.clock = clock
        self._lock = asyncio.Lock()

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def _expiry(self, tier: GoldenTier, now: datetime) -> datetime:
        return now + timedelta(seconds=self.tier_windows[tier])

    @staticmethod
    def _age_minutes(entry: GoldenEntry, now: datetime) -> int:
        return int((now - entry.timestamp).total_seconds() // 60)

    # ===========================
    # Disk I/O (runs in worker threads)
    # ===========================

    @staticmethod
    def _parse_dataset(raw: Any, origin: str) -> Dict[str, GoldenEntry]:
        if not isinstance(raw, dict):
            raise ValueError(f"{origin} is not a JSON object")

        dataset: Dict[str, GoldenEntry] = {}
        for data_type, value in raw.items():
            try:
                entry = GoldenEntry.model_validate(value)
            except ValidationError as e:
                logger.warning(f"Skipping invalid golden entry {data_type} in {origin}: {e.error_count()} errors")
                continue
            dataset[data_type] = entry
        return dataset

    def _read_file(self, path: Path) -> Dict[str, GoldenEntry]:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return self._parse_dataset(raw, path.name)

    @staticmethod
    def _serialize(dataset: Dict[str, GoldenEntry]) -> Dict[str, Any]:
        return {data_type: entry.model_dump(mode="json", by_alias=True) for data_type, entry in dataset.items()}

    def _write_file(self, path: Path, dataset: Dict[str, GoldenEntry]):
        self.data_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._serialize(dataset), f, indent=2)
        os.replace(tmp_path, path)

    def _primary_is_valid(self) -> bool:
        try:
            with open(self.dataset_path, "r", encoding="utf-8") as f:
                return isinstance(json.load(f), dict)
        except FileNotFoundError:
            return False
        except ValueError:
            logger.warning("Primary golden dataset is corrupt, keeping previous backup")
            return False

    def _write_with_backup(self, dataset: Dict[str, GoldenEntry]):
        if self._primary_is_valid():
            shutil.copyfile(self.dataset_path, self.backup_path)
        self._write_file(self.dataset_path, dataset)

    # ===========================
    # Persistence
    # ===========================

    async def initialize(self):
        """Create the data directory and report what survived the restart"""
        await asyncio.to_thread(self.data_dir.mkdir, parents=True, exist_ok=True)
        dataset = await self.load()
        logger.info(f"Golden dataset loaded: {len(dataset)} entries from {self.dataset_path}")

    async def load(self) -> Dict[str, GoldenEntry]:
        """Read the dataset, restoring the primary file from backup when it is missing or corrupt"""
        try:
            return await asyncio.to_thread(self._read_file, self.dataset_path)
        except FileNotFoundError:
            problem = "missing"
        except (ValueError, OSError) as e:
            problem = f"unreadable: {e}"
            logger.warning(f"Golden dataset {problem}, trying backup")

        try:
            dataset = await asyncio.to_thread(self._read_file, self.backup_path)
        except FileNotFoundError:
            if problem != "missing":
                logger.error("Golden dataset corrupt and no backup available, starting empty")
            return {}
        except (ValueError, OSError) as e:
            logger.error(f"Golden dataset backup unreadable ({e}), starting empty")
            return {}

        logger.warning(f"Golden dataset restored from backup (primary {problem}), {len(dataset)} entries")
        try:
            await asyncio.to_thread(self._write_file, self.dataset_path, dataset)
        except OSError as e:
            logger.error(f"Could not repair primary golden dataset: {e}")
        return dataset

    async def save(self, dataset: Dict[str, GoldenEntry]) -> bool:
        """Persist the dataset; failures are logged and retried on the next write"""
        try:
            await asyncio.to_thread(self._write_with_backup, dataset)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save golden dataset: {e}")
            return False

    # ===========================
    # Tier ladder
    # ===========================

    def _age_entry(self, entry: GoldenEntry, now: datetime) -> Tuple[Optional[GoldenEntry], str]:
        """One ladder step for an expired entry: ('kept'|'demoted'|'removed')"""
        if now <= entry.expires_at:
            return entry, "kept"

        next_tier = entry.tier.next_tier()
        if next_tier is None:
            logger.info(f"Golden entry {entry.data_type} expired at {entry.tier.value}, removing")
            return None, "removed"

        logger.info(f"Golden entry {entry.data_type} demoted {entry.tier.value} -> {next_tier.value}")
        return entry.model_copy(update={"tier": next_tier, "expires_at": self._expiry(next_tier, now)}), "demoted"

    # ===========================
    # Public operations
    # ===========================

    async def store(self, data_type: str, data: Any, tier: GoldenTier = GoldenTier.FRESH) -> bool:
        """Overwrite the entry for data_type with a successful payload"""
        tier = GoldenTier(tier)
        now = self._now()
        entry = GoldenEntry(
            data_type=data_type,
            data=data,
            timestamp=now,
            tier=tier,
            expires_at=self._expiry(tier, now),
            source="api_success",
            data_points=count_data_points(data),
        )

        async with self._lock:
            dataset = await self.load()
            dataset[data_type] = entry
            saved = await self.save(dataset)

        if saved:
            logger.info(f"Golden dataset stored {data_type} ({entry.data_points} data points, tier {tier.value})")
        return saved

    async def retrieve(self, data_type: str,
                       acceptable_tiers: Iterable[GoldenTier] = DEFAULT_ACCEPTABLE_TIERS) -> Optional[Dict[str, Any]]:
        """Entry data and metadata if its tier, after any due demotion, is acceptable"""
        acceptable = {GoldenTier(t) for t in acceptable_tiers}

        async with self._lock:
            dataset = await self.load()
            entry = dataset.get(data_type)
            if entry is None:
                return None

            now = self._now()
            aged, action = self._age_entry(entry, now)
            if action == "removed":
                del dataset[data_type]
                await self.save(dataset)
                return None
            if action == "demoted":
                dataset[data_type] = aged
                await self.save(dataset)

        if aged.tier not in acceptable:
            logger.debug(f"Golden entry {data_type} at tier {aged.tier.value} not acceptable")
            return None

        return {
            "data": aged.data,
            "metadata": {
                "tier": aged.tier.value,
                "timestamp": aged.timestamp.isoformat(),
                "age": self._age_minutes(aged, now),
                "source": aged.source,
                "dataPoints": aged.data_points,
            },
        }

    async def get_all(self) -> Dict[str, Dict[str, Any]]:
        dataset = await self.load()
        now = self._now()
        return {
            data_type: {
                "tier": entry.tier.value,
                "age": self._age_minutes(entry, now),
                "dataPoints": entry.data_points,
                "timestamp": entry.timestamp.isoformat(),
                "available": entry.expires_at > now,
            }
            for data_type, entry in dataset.items()
        }

    async def cleanup(self) -> int:
        """Apply the ladder to every entry; returns how many were demoted or removed"""
        async with self._lock:
            dataset = await self.load()
            now = self._now()
            removed = demoted = 0

            for data_type, entry in list(dataset.items()):
                aged, action = self._age_entry(entry, now)
                if action == "removed":
                    del dataset[data_type]
                    removed += 1
                elif action == "demoted":
                    dataset[data_type] = aged
                    demoted += 1

            if removed or demoted:
                await self.save(dataset)
                logger.info(f"Golden dataset cleanup: {removed} removed, {demoted} demoted")

        return removed + demoted

    async def get_stats(self) -> Dict[str, Any]:
        dataset = await self.load()
        now = self._now()
        entries = sorted(dataset.values(), key=lambda e: e.timestamp)

        def describe(entry: Optional[GoldenEntry]):
            if entry is None:
                return None
            return {"dataType": entry.data_type, "timestamp": entry.timestamp.isoformat(), "tier": entry.tier.value}

        ages = [self._age_minutes(e, now) for e in entries]
        return {
            "totalEntries": len(entries),
            "tierBreakdown": {tier.value: sum(1 for e in entries if e.tier == tier) for tier in GoldenTier},
            "totalDataPoints": sum(e.data_points for e in entries),
            "oldestEntry": describe(entries[0] if entries else None),
            "newestEntry": describe(entries[-1] if entries else None),
            "averageAge": round(sum(ages) / len(ages)) if ages else 0,
        }

    async def export(self) -> Dict[str, Any]:
        dataset = await self.load()
        return {
            "dataset": self._serialize(dataset),
            "stats": await self.get_stats(),
            "exportedAt": self._now().isoformat(),
            "version": EXPORT_VERSION,
        }

    async def import_dataset(self, payload: Dict[str, Any]) -> bool:
        """Replace the dataset with an exported one"""
        if not isinstance(payload, dict) or not isinstance(payload.get("dataset"), dict):
            logger.error("Golden dataset import rejected: payload has no dataset object")
            return False

        dataset = self._parse_dataset(payload["dataset"], "import")
        async with self._lock:
            saved = await self.save(dataset)

        if saved:
            logger.info(f"Golden dataset imported {len(dataset)} entries (version {payload.get('version', 'unknown')})")
        return saved

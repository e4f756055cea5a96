"""YAML storage for the local collections."""

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

import yaml

from watch_merge.merge import consolidate_history
from watch_merge.models import (
    CATEGORIES,
    FAVORITES,
    WATCH_HISTORY,
    WATCHLIST,
    Collections,
    MediaRecord,
    WatchRecord,
)

logger = logging.getLogger(__name__)

FILENAMES = {
    WATCH_HISTORY: "watch_history.yaml",
    FAVORITES: "favorites.yaml",
    WATCHLIST: "watchlist.yaml",
}


class RestoreInProgressError(Exception):
    """Another restore holds the lock on this data directory."""

    pass


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class DataStore:
    """Manages watch history, favorites and watchlist in YAML files."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize data store."""
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.lock_path = self.data_dir / "restore.lock"

    def path_for(self, category: str) -> Path:
        """File that holds a category."""
        if category not in FILENAMES:
            raise ValueError(f"Unknown category: {category}")
        return self.data_dir / FILENAMES[category]

    def save_category(self, category: str, records: list) -> None:
        """Save one category to its YAML file."""
        data = {
            "sync_metadata": {
                "last_updated": datetime.now().isoformat(),
                "total_items": len(records),
            },
            "items": [record.to_dict() for record in records],
        }

        with open(self.path_for(category), "w", encoding="utf-8") as f:
            yaml.safe_dump(
                data,
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
                indent=2,
            )

    def load_category(self, category: str) -> list:
        """Load one category.

        Rows that no longer parse are skipped. History is consolidated to
        one record per title.
        """
        path = self.path_for(category)
        if not path.exists():
            return []

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not data or "items" not in data:
            return []

        model = WatchRecord if category == WATCH_HISTORY else MediaRecord
        records = []
        for raw in data["items"] or []:
            try:
                records.append(model.from_dict(raw))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping unreadable %s row: %s", category, e)

        if category == WATCH_HISTORY:
            return consolidate_history(records)
        return records

    def load_collections(self) -> Collections:
        """Load all three collections."""
        return Collections(
            watch_history=self.load_category(WATCH_HISTORY),
            favorites=self.load_category(FAVORITES),
            watchlist=self.load_category(WATCHLIST),
        )

    def save_collections(self, collections: Collections) -> None:
        """Save all three collections."""
        for category in CATEGORIES:
            self.save_category(category, collections.get(category))

    def remove_item(self, category: str, record_id: str) -> bool:
        """Delete one record by id. Returns True if something was removed."""
        records = self.load_category(category)
        remaining = [record for record in records if record.id != record_id]
        if len(remaining) == len(records):
            return False
        self.save_category(category, remaining)
        return True

    def clear(self, categories: Optional[Iterable[str]] = None) -> List[str]:
        """Delete the stored data for the given categories (default all)."""
        cleared = []
        for category in categories or CATEGORIES:
            path = self.path_for(category)
            if path.exists():
                path.unlink()
                cleared.append(category)
        return cleared

    def get_last_update_time(self) -> Optional[datetime]:
        """Most recent save time across all categories."""
        latest = None
        for category in CATEGORIES:
            path = self.path_for(category)
            if not path.exists():
                continue

            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)

            if not data or "sync_metadata" not in data:
                continue

            last_updated = data["sync_metadata"].get("last_updated")
            if last_updated:
                timestamp = datetime.fromisoformat(last_updated)
                if latest is None or timestamp > latest:
                    latest = timestamp
        return latest

    def lock_owner(self) -> Optional[int]:
        """Pid recorded in the restore lock, or None if absent or unreadable."""
        try:
            first_line = self.lock_path.read_text(encoding="utf-8").splitlines()[0]
            return int(first_line)
        except (OSError, IndexError, ValueError):
            return None

    def release_restore_lock(self) -> bool:
        """Remove the restore lock whoever holds it. Returns True if one existed."""
        if not self.lock_path.exists():
            return False
        self.lock_path.unlink(missing_ok=True)
        logger.warning("Removed restore lock %s", self.lock_path)
        return True

    def _acquire_restore_lock(self) -> None:
        with open(self.lock_path, "x", encoding="utf-8") as f:
            f.write(f"{os.getpid()}\n{datetime.now().isoformat()}\n")

    @contextmanager
    def restore_lock(self):
        """Hold the restore flag for the duration of a restore.

        A lock left by a process that no longer exists is taken over. A lock
        without a readable pid counts as held.
        """
        try:
            self._acquire_restore_lock()
        except FileExistsError:
            owner = self.lock_owner()
            if owner is None or owner <= 0 or _pid_alive(owner):
                raise RestoreInProgressError(
                    f"A restore is already in progress ({self.lock_path})"
                )
            logger.warning("Taking over stale restore lock from pid %d", owner)
            self.lock_path.unlink(missing_ok=True)
            try:
                self._acquire_restore_lock()
            except FileExistsError:
                raise RestoreInProgressError(
                    f"A restore is already in progress ({self.lock_path})"
                )

        try:
            yield
        finally:
            self.lock_path.unlink(missing_ok=True)

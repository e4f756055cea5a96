"""Backup file creation and reading."""

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from watch_merge.models import (
    FAVORITES,
    WATCH_HISTORY,
    WATCHLIST,
    Collections,
)

BACKUP_VERSION = "1.0"
MAX_BACKUP_BYTES = 50 * 1024 * 1024


class BackupFileError(Exception):
    """Backup file could not be read."""

    pass


def create_backup(
    collections: Collections, user_id: str, now: Optional[datetime] = None
) -> dict:
    """Build a backup document from the local collections."""
    if not user_id:
        raise ValueError("User ID is required for backup")

    now = now or datetime.now(timezone.utc)
    data = {
        WATCH_HISTORY: [record.to_dict() for record in collections.watch_history],
        FAVORITES: [record.to_dict() for record in collections.favorites],
        WATCHLIST: [record.to_dict() for record in collections.watchlist],
    }
    return {
        "metadata": {
            "createdAt": now.isoformat(),
            "version": BACKUP_VERSION,
            "userId": user_id,
            "counts": {name: len(items) for name, items in data.items()},
        },
        "data": data,
    }


def write_backup(backup: dict, path: Path) -> Path:
    """Write a backup as pretty-printed UTF-8 JSON.

    Returns the path actually written, with a .json suffix added if needed.
    """
    path = Path(path)
    if path.suffix.lower() != ".json":
        path = path.with_name(path.name + ".json")
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(backup, f, indent=2, ensure_ascii=False)

    return path


def default_backup_filename(user_id: str, today: Optional[datetime] = None) -> str:
    """Default file name for a backup."""
    today = today or datetime.now(timezone.utc)
    return f"watch-merge-backup-{user_id}-{today.strftime('%Y-%m-%d')}.json"


def backup_filename_suggestions(
    backup: dict, user_email: Optional[str] = None, now: Optional[datetime] = None
) -> List[str]:
    """Alternative file names for a backup."""
    now = now or datetime.now(timezone.utc)
    date = now.strftime("%Y-%m-%d")
    stamp = now.strftime("%Y-%m-%d_%H%M%S")

    metadata = backup.get("metadata", {})
    if user_email:
        who = re.sub(r"[^a-zA-Z0-9]", "", user_email.split("@")[0])
    else:
        who = str(metadata.get("userId", "user"))[:8]

    counts = metadata.get("counts", {})
    history = counts.get(WATCH_HISTORY, 0)
    total = sum(counts.values())

    return [
        f"WatchMerge_Backup_{who}_{date}.json",
        f"MyWatchData_{who}_{stamp}.json",
        f"WatchMerge_{who}_WatchHistory_{history}_items_{date}.json",
        f"Backup_{who}_{total}_items_{date}.json",
        f"WatchData_Backup_{stamp}.json",
        f"watch_merge_backup_v{BACKUP_VERSION}_{who}_{stamp}.json",
    ]


def read_backup_file(path: Path, max_size: int = MAX_BACKUP_BYTES) -> dict:
    """Read and parse a backup file.

    Checks extension and size before parsing. Raises BackupFileError with a
    user-facing message on any failure.
    """
    path = Path(path)

    if path.suffix.lower() != ".json":
        raise BackupFileError("File must be a JSON file (.json extension)")
    if not path.is_file():
        raise BackupFileError(f"Backup file not found: {path}")

    size = path.stat().st_size
    if size > max_size:
        raise BackupFileError(
            f"File size ({size / 1024 / 1024:.2f}MB) exceeds maximum limit of "
            f"{max_size / 1024 / 1024:.0f}MB"
        )

    try:
        with open(path, encoding="utf-8") as f:
            content = f.read()
    except UnicodeDecodeError:
        raise BackupFileError("Backup file is not valid UTF-8 text")
    except OSError as e:
        raise BackupFileError(f"Failed to read file: {e}")

    if not content.strip():
        raise BackupFileError("File is empty")

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        raise BackupFileError("Invalid JSON format in backup file")

    if not isinstance(data, dict):
        raise BackupFileError("Invalid backup file format")

    return data

"""Merge a whole backup dataset into the local collections."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from watch_merge.identity import identity_key
from watch_merge.merge import apply_update, upsert_media
from watch_merge.models import (
    CATEGORIES,
    FAVORITES,
    WATCH_HISTORY,
    WATCHLIST,
    Collections,
    MediaRecord,
    WatchRecord,
)
from watch_merge.validator import ValidationResult, validate

logger = logging.getLogger(__name__)


@dataclass
class CategoryStats:
    """Per-category restore counters."""

    added: int = 0
    updated: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {"added": self.added, "updated": self.updated, "errors": self.errors}


@dataclass
class ItemFailure:
    """An item that could not be merged."""

    category: str
    index: int
    media_id: object
    reason: str


def _empty_stats() -> Dict[str, CategoryStats]:
    return {category: CategoryStats() for category in CATEGORIES}


@dataclass
class RestoreResult:
    """Outcome of a restore.

    success is True when the run completed, even if some items failed;
    those are counted in stats and listed in failures.
    """

    success: bool
    message: str
    stats: Dict[str, CategoryStats] = field(default_factory=_empty_stats)
    collections: Optional[Collections] = None
    validation: Optional[ValidationResult] = None
    failures: List[ItemFailure] = field(default_factory=list)

    def total(self, counter: str) -> int:
        return sum(getattr(stats, counter) for stats in self.stats.values())


def _parse_item(raw, category: str, user_id: Optional[str]):
    if category == WATCH_HISTORY:
        record = WatchRecord.from_dict(raw)
    else:
        record = MediaRecord.from_dict(raw)
    if user_id:
        record.user_id = user_id
    if not record.id:
        record.id = uuid.uuid4().hex
    return record


def _restore_category(
    category: str,
    items: list,
    collection: list,
    stats: CategoryStats,
    failures: List[ItemFailure],
    user_id: Optional[str],
) -> list:
    merge = apply_update if category == WATCH_HISTORY else upsert_media
    known = {identity_key(record) for record in collection}

    for index, raw in enumerate(items):
        try:
            record = _parse_item(raw, category, user_id)
            key = identity_key(record)
            merged = merge(collection, record).collection
        except Exception as e:
            media_id = raw.get("media_id") if isinstance(raw, dict) else None
            logger.warning("Skipping %s[%d] (media_id=%r): %s", category, index, media_id, e)
            failures.append(ItemFailure(category, index, media_id, str(e)))
            stats.errors += 1
            continue

        # Only commit once the item merged cleanly
        collection = merged
        if key in known:
            stats.updated += 1
        else:
            known.add(key)
            stats.added += 1

    return collection


def restore(dataset, collections: Collections, user_id: Optional[str] = None) -> RestoreResult:
    """Merge a backup dataset into copies of the given collections.

    History items go through apply_update; favorites and watchlist use
    replace-if-newer. A failing item is counted and skipped without
    touching the collections. An invalid dataset or an unexpected error
    gives success=False with zeroed stats and the input left as it was.
    When user_id is given every restored record is reassigned to it.
    """
    try:
        validation = validate(dataset)
        if not validation.is_valid:
            return RestoreResult(
                success=False,
                message=f"Validation failed: {', '.join(validation.errors)}",
                collections=collections,
                validation=validation,
            )
        for warning in validation.warnings:
            logger.warning("Backup validation warning: %s", warning)

        data = dataset["data"]
        stats = _empty_stats()
        failures: List[ItemFailure] = []
        restored = {}
        for category in CATEGORIES:
            restored[category] = _restore_category(
                category,
                data.get(category) or [],
                list(collections.get(category)),
                stats[category],
                failures,
                user_id,
            )
    except Exception as e:
        logger.exception("Restore failed")
        return RestoreResult(
            success=False,
            message=f"Failed to restore backup: {e}",
            collections=collections,
        )

    result = RestoreResult(
        success=True,
        message="",
        stats=stats,
        collections=Collections(
            watch_history=restored[WATCH_HISTORY],
            favorites=restored[FAVORITES],
            watchlist=restored[WATCHLIST],
        ),
        validation=validation,
        failures=failures,
    )

    added = result.total("added")
    updated = result.total("updated")
    errors = result.total("errors")
    result.message = f"Backup restored successfully ({added} added, {updated} updated"
    result.message += f", {errors} errors)" if errors else ")"
    logger.info(result.message)
    return result

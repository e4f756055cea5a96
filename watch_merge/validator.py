"""Structural validation of backup datasets before they are merged."""

from dataclasses import dataclass, field
from typing import List, Optional

from watch_merge.models import (
    CATEGORIES,
    FAVORITES,
    WATCH_HISTORY,
    WATCHLIST,
    MediaType,
    try_parse_timestamp,
)

SUPPORTED_VERSIONS = ("1.0",)

# Categories that may be absent from a backup and are then treated as empty
OPTIONAL_CATEGORIES = (FAVORITES, WATCHLIST)

_MEDIA_TYPES = {media_type.value for media_type in MediaType}


@dataclass
class ValidationResult:
    """Result of validating a backup dataset.

    is_valid is False exactly when errors is non-empty.
    """

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def item_problem(item, category: str) -> Optional[str]:
    """Describe why an item cannot be merged, or None if it can."""
    if not isinstance(item, dict):
        return "not an object"
    media_id = item.get("media_id")
    if isinstance(media_id, bool) or not isinstance(media_id, int):
        return "missing or invalid media_id"
    media_type = item.get("media_type")
    if not isinstance(media_type, str) or media_type not in _MEDIA_TYPES:
        return "missing or invalid media_type"
    if category == WATCH_HISTORY:
        timestamp = item.get("created_at")
    else:
        timestamp = item.get("added_at") or item.get("created_at")
    if try_parse_timestamp(timestamp) is None:
        return "missing or invalid timestamp"
    return None


def _check_metadata(dataset: dict, warnings: List[str]) -> None:
    metadata = dataset.get("metadata")
    if isinstance(metadata, dict):
        created_at = metadata.get("createdAt")
        version = metadata.get("version")
    elif "backup_date" in dataset or "version" in dataset:
        # Older backups keep these at the top level
        created_at = dataset.get("backup_date")
        version = dataset.get("version")
    else:
        warnings.append("Missing backup metadata")
        return

    if try_parse_timestamp(created_at) is None:
        warnings.append("Missing or invalid backup creation date")
    if version is not None and version not in SUPPORTED_VERSIONS:
        warnings.append(f"Unrecognized backup version: {version}")


def _check_counts(dataset: dict, lengths: dict, warnings: List[str]) -> None:
    metadata = dataset.get("metadata")
    if not isinstance(metadata, dict) or not isinstance(metadata.get("counts"), dict):
        return
    for category, declared in metadata["counts"].items():
        actual = lengths.get(category)
        if actual is not None and declared != actual:
            warnings.append(
                f"{category}: metadata declares {declared} item(s), found {actual}"
            )


def validate(dataset) -> ValidationResult:
    """Validate a parsed backup dataset.

    Missing watchHistory is an error. Missing favorites or watchlist is a
    warning and the category is treated as empty. Items that cannot be
    merged are counted per category and reported as a warning; the dataset
    is only invalid when it had items and none of them are usable.
    The dataset is never modified.
    """
    result = ValidationResult()

    if not isinstance(dataset, dict):
        result.errors.append("Invalid backup data: not an object")
        return result

    _check_metadata(dataset, result.warnings)

    data = dataset.get("data")
    if not isinstance(data, dict):
        result.errors.append("Missing or invalid data field")
        return result

    total = 0
    usable = 0
    lengths = {}

    for category in CATEGORIES:
        items = data.get(category)
        if items is None:
            if category in OPTIONAL_CATEGORIES:
                result.warnings.append(f"Missing {category} array, treating as empty")
            else:
                result.errors.append(f"Missing {category} array")
            continue
        if not isinstance(items, list):
            result.errors.append(f"Invalid {category}: expected an array")
            continue

        lengths[category] = len(items)
        skipped = 0
        for index, item in enumerate(items):
            problem = item_problem(item, category)
            if problem:
                skipped += 1
                continue
            if (
                category == WATCH_HISTORY
                and item["media_type"] == MediaType.TV.value
                and (item.get("season") is None or item.get("episode") is None)
            ):
                result.warnings.append(
                    f"{category}[{index}]: tv item without season/episode, using 0"
                )

        total += len(items)
        usable += len(items) - skipped
        if skipped:
            result.warnings.append(f"{category}: {skipped} invalid item(s) will be skipped")

    _check_counts(dataset, lengths, result.warnings)

    if not result.errors:
        if total == 0:
            result.warnings.append("Backup contains no data")
        elif usable == 0:
            result.errors.append("Backup contains no usable items")

    return result

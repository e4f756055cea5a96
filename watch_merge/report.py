"""Log items that failed to restore for review."""

from datetime import datetime
from pathlib import Path
from typing import List

import yaml

from watch_merge.restore import ItemFailure


class RestoreErrorLog:
    """Collect items that could not be restored and write them to YAML."""

    def __init__(self, data_dir: Path):
        """Initialize error log."""
        self.data_dir = data_dir
        self.report_path = data_dir / "restore_errors.yaml"
        self.items: List[dict] = []

    def log(self, failure: ItemFailure, source: str = "") -> None:
        """Log a failed item."""
        self.items.append({
            "source": source,
            "category": failure.category,
            "index": failure.index,
            "media_id": failure.media_id,
            "reason": failure.reason,
        })

    def log_all(self, failures: List[ItemFailure], source: str = "") -> None:
        for failure in failures:
            self.log(failure, source=source)

    def save(self) -> None:
        """Save failed items to YAML."""
        if not self.items:
            return

        self.data_dir.mkdir(parents=True, exist_ok=True)

        data = {
            "logged_at": datetime.now().isoformat(),
            "count": len(self.items),
            "items": self.items,
        }

        with open(self.report_path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    def count(self) -> int:
        """Return count of failed items."""
        return len(self.items)

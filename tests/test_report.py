"""Tests for restore error reporting."""

import yaml

from watch_merge.report import RestoreErrorLog
from watch_merge.restore import ItemFailure


class TestRestoreErrorLog:
    """Test failed item logging."""

    def test_log_failed_item(self, tmp_path):
        """Log failed item to YAML."""
        log = RestoreErrorLog(data_dir=tmp_path)

        log.log(
            ItemFailure("favorites", 1, None, "Missing or invalid media_id: None"),
            source="backup.json",
        )
        log.save()

        with open(tmp_path / "restore_errors.yaml") as f:
            data = yaml.safe_load(f)

        assert data["count"] == 1
        assert data["items"][0]["category"] == "favorites"
        assert data["items"][0]["source"] == "backup.json"
        assert data["items"][0]["reason"].startswith("Missing or invalid media_id")

    def test_log_all(self, tmp_path):
        log = RestoreErrorLog(data_dir=tmp_path)
        log.log_all([ItemFailure("watchHistory", i, i, "bad") for i in range(3)])
        log.save()

        with open(tmp_path / "restore_errors.yaml") as f:
            data = yaml.safe_load(f)

        assert len(data["items"]) == 3
        assert log.count() == 3

    def test_nothing_written_when_empty(self, tmp_path):
        log = RestoreErrorLog(data_dir=tmp_path)
        log.save()
        assert not (tmp_path / "restore_errors.yaml").exists()

"""
Unit tests for RetentionManager.

Tests cover:
- Records older than the daily cutoff are removed with their artifacts
- Newer records and recent in-progress records are kept
- In-progress records past the monthly cutoff (interrupted runs) expire
- Artifact deletion failures keep the record for the next cycle
- Secondary copies are removed best effort
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from carpool_backup.catalog import JsonFileBackupCatalog
from carpool_backup.config import RetentionConfig
from carpool_backup.models import BackupStatus
from carpool_backup.retention import RetentionManager
from carpool_backup.storage_client import StorageClient

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def retention_manager(catalog, artifact_store, metrics):
    return RetentionManager(RetentionConfig(daily=7), catalog, artifact_store, metrics=metrics)


def _write_artifacts(artifact_store, backup_id):
    artifact_store.write_collection(backup_id, "carpool", "users", [{"_id": "u1"}])
    with open(artifact_store.manifest_path(backup_id), "w") as f:
        f.write("{}")


class TestCleanup:
    """Test cleanup cycle."""

    def test_cutoffs(self, retention_manager):
        report = retention_manager.cleanup(now=NOW)

        assert report.daily_cutoff == NOW - timedelta(days=7)
        assert report.weekly_cutoff == NOW - timedelta(days=28)
        assert report.monthly_cutoff == NOW - timedelta(days=180)

    def test_old_backup_removed_newer_kept(
        self, retention_manager, catalog, artifact_store, make_record, metrics
    ):
        """Test 10-day-old record is deleted and 3-day-old record is kept."""
        catalog.add(make_record("old", NOW - timedelta(days=10)))
        catalog.add(make_record("recent", NOW - timedelta(days=3)))
        _write_artifacts(artifact_store, "old")
        _write_artifacts(artifact_store, "recent")

        report = retention_manager.cleanup(now=NOW)

        assert report.deleted == ["old"]
        assert [r.id for r in catalog.list()] == ["recent"]
        assert artifact_store.artifact_files("old") == []
        assert len(artifact_store.artifact_files("recent")) == 2
        assert metrics.registry.get_sample_value("carpool_backup_retention_deleted_total") == 1.0

    def test_failed_records_also_expire(self, retention_manager, catalog, make_record):
        catalog.add(make_record("old-failed", NOW - timedelta(days=30), status=BackupStatus.FAILED))

        report = retention_manager.cleanup(now=NOW)

        assert report.deleted == ["old-failed"]
        assert catalog.list() == []

    def test_recent_in_progress_kept(self, retention_manager, catalog, make_record):
        catalog.add(
            make_record("running", NOW - timedelta(days=30), status=BackupStatus.IN_PROGRESS)
        )

        report = retention_manager.cleanup(now=NOW)

        assert report.deleted == []
        assert catalog.get("running") is not None

    def test_interrupted_in_progress_expires_after_reload(
        self, tmp_path, artifact_store, make_record
    ):
        """Test an in_progress record left by a crashed run is removed eventually."""
        path = str(tmp_path / "catalog.json")
        JsonFileBackupCatalog(path).add(
            make_record("crashed", NOW - timedelta(days=400), status=BackupStatus.IN_PROGRESS)
        )
        artifact_store.write_collection("crashed", "carpool", "users", [{"_id": "u1"}])

        catalog = JsonFileBackupCatalog(path)
        report = RetentionManager(RetentionConfig(daily=7), catalog, artifact_store).cleanup(
            now=NOW
        )

        assert report.deleted == ["crashed"]
        assert JsonFileBackupCatalog(path).list() == []
        assert artifact_store.artifact_files("crashed") == []

    def test_missing_artifacts_are_fine(self, retention_manager, catalog, make_record):
        catalog.add(make_record("ghost", NOW - timedelta(days=8)))

        report = retention_manager.cleanup(now=NOW)

        assert report.deleted == ["ghost"]

    def test_delete_error_keeps_record(
        self, retention_manager, catalog, artifact_store, make_record
    ):
        catalog.add(make_record("locked", NOW - timedelta(days=10)))
        catalog.add(make_record("old", NOW - timedelta(days=9)))
        _write_artifacts(artifact_store, "locked")

        original_delete = artifact_store.delete_backup

        def failing_delete(backup_id):
            if backup_id == "locked":
                raise PermissionError("read-only filesystem")
            original_delete(backup_id)

        with patch.object(artifact_store, "delete_backup", side_effect=failing_delete):
            report = retention_manager.cleanup(now=NOW)

        assert report.failed == ["locked"]
        assert report.deleted == ["old"]
        assert catalog.get("locked") is not None

    def test_weekly_and_monthly_do_not_preserve_old_records(
        self, catalog, artifact_store, make_record
    ):
        """Test only the daily cutoff is enforced."""
        manager = RetentionManager(
            RetentionConfig(daily=1, weekly=52, monthly=120), catalog, artifact_store
        )
        catalog.add(make_record("two-days", NOW - timedelta(days=2)))

        report = manager.cleanup(now=NOW)

        assert report.deleted == ["two-days"]


class TestSecondaryCleanup:
    """Test secondary copy removal."""

    def test_secondary_copies_deleted(self, catalog, artifact_store, make_record):
        secondary = Mock(spec=StorageClient)
        secondary.delete_backup.return_value = True
        manager = RetentionManager(
            RetentionConfig(daily=7), catalog, artifact_store, secondary=secondary
        )
        catalog.add(make_record("old", NOW - timedelta(days=10), secondary_copied=True))
        _write_artifacts(artifact_store, "old")

        manager.cleanup(now=NOW)

        deleted_keys = [c.args[0] for c in secondary.delete_backup.call_args_list]
        assert "old.json" in deleted_keys
        assert len(deleted_keys) == 2

    def test_secondary_failure_is_best_effort(self, catalog, artifact_store, make_record):
        secondary = Mock(spec=StorageClient)
        secondary.delete_backup.return_value = False
        manager = RetentionManager(
            RetentionConfig(daily=7), catalog, artifact_store, secondary=secondary
        )
        catalog.add(make_record("old", NOW - timedelta(days=10), secondary_copied=True))
        _write_artifacts(artifact_store, "old")

        report = manager.cleanup(now=NOW)

        assert report.deleted == ["old"]
        assert catalog.get("old") is None

"""
Integration tests for BackupRecoveryManager.

Tests cover:
- End-to-end backup, tamper, restore cycle through the facade
- Backup metrics reflect failures
- Disaster recovery restores the latest full backup and later incrementals
- Secondary usage comes from the mirror listing
- Builder wiring from configuration
"""

import json
import os
import time
from unittest.mock import Mock

import pytest

from carpool_backup.catalog import JsonFileBackupCatalog
from carpool_backup.command_runner import CommandResult, CommandRunner
from carpool_backup.config import BackupConfiguration, StorageConfig
from carpool_backup.document_store import MongoDocumentStore
from carpool_backup.exceptions import DisasterRecoveryError, DocumentStoreError
from carpool_backup.manager import BackupRecoveryManager
from carpool_backup.models import BackupStatus, RestoreOptions
from carpool_backup.notifications import AlertNotifier
from carpool_backup.scheduler import FULL_BACKUP_JOB, RETENTION_CLEANUP_JOB
from carpool_backup.storage_client import LocalStorageClient


@pytest.fixture
def command_runner():
    runner = Mock(spec=CommandRunner)
    runner.run.return_value = CommandResult(stdout="", stderr="", exit_code=0)
    return runner


@pytest.fixture
def manager(backup_config, document_store, command_runner):
    return BackupRecoveryManager(
        backup_config,
        document_store,
        command_runner=command_runner,
        notifier=Mock(spec=AlertNotifier),
    )


class TestBackupRestoreCycle:
    def test_backup_then_restore(self, manager, document_store):
        backup = manager.perform_full_backup()
        document_store.put_document("carpool", "trips", {"_id": "trip-2", "seats": 99})

        manager.restore_from_backup(RestoreOptions(backup_id=backup.id, validate_only=True))
        report = manager.restore_from_backup(RestoreOptions(backup_id=backup.id))

        assert report.documents_restored == 8
        trips = {d["_id"]: d for d in document_store.documents("carpool", "trips")}
        assert trips["trip-2"]["seats"] == 3

    def test_metrics_include_failures(self, manager, document_store):
        manager.perform_full_backup()
        document_store.list_databases = Mock(side_effect=DocumentStoreError("down"))

        with pytest.raises(DocumentStoreError):
            manager.perform_full_backup()

        metrics = manager.get_backup_metrics()
        assert metrics.total_backups == 2
        assert metrics.success_rate == pytest.approx(0.5)
        assert metrics.last_full_backup is not None
        assert metrics.storage_usage.secondary is None

    def test_secondary_usage_from_mirror_listing(
        self, backup_config, document_store, command_runner, tmp_path
    ):
        manager = BackupRecoveryManager(
            backup_config,
            document_store,
            secondary=LocalStorageClient(str(tmp_path / "mirror")),
            command_runner=command_runner,
            notifier=Mock(spec=AlertNotifier),
        )
        backup = manager.perform_full_backup()

        metrics = manager.get_backup_metrics()

        expected = sum(
            os.path.getsize(path) for path in manager.artifact_store.artifact_paths(backup.id)
        )
        assert metrics.storage_usage.secondary == expected
        assert metrics.storage_usage.primary == backup.size

    def test_scheduler_wired_to_operations(self, manager):
        manager.scheduler.trigger(FULL_BACKUP_JOB)
        manager.scheduler.trigger(RETENTION_CLEANUP_JOB)

        records = manager.catalog.list()
        assert len(records) == 1
        assert records[0].status == BackupStatus.COMPLETED


class TestDisasterRecovery:
    def test_restores_latest_backup(self, manager, document_store, command_runner):
        manager.perform_full_backup()
        document_store.put_document("carpool", "users", {"_id": "user-4", "name": "Lost"})

        report = manager.execute_disaster_recovery()

        users = {d["_id"]: d for d in document_store.documents("carpool", "users")}
        assert users["user-4"]["name"] == "User 4"
        command_runner.run.assert_called_once()
        assert report.manual_steps == ["assess_damage", "notify_users"]
        assert report.health["healthy"] is True

    def test_restores_full_then_newer_incrementals(self, manager, document_store):
        """Test the full backup is restored first, then each later incremental."""
        manager.perform_full_backup()
        document_store.put_document(
            "carpool", "users", {"_id": "user-1", "name": "Renamed", "_ts": time.time()}
        )
        changed = manager.perform_incremental_backup()
        empty = manager.perform_incremental_backup()
        assert changed.collections == ["carpool.users"]
        assert empty.collections == []

        document_store.put_document("carpool", "users", {"_id": "user-1", "name": "Lost"})
        document_store.put_document("carpool", "users", {"_id": "user-4", "name": "Lost"})

        manager.execute_disaster_recovery()

        users = {d["_id"]: d for d in document_store.documents("carpool", "users")}
        assert users["user-1"]["name"] == "Renamed"
        assert users["user-4"]["name"] == "User 4"

    def test_no_backup_available(self, manager):
        with pytest.raises(DisasterRecoveryError):
            manager.execute_disaster_recovery()

    def test_incrementals_without_full_backup(self, manager):
        manager.perform_incremental_backup()

        with pytest.raises(DisasterRecoveryError):
            manager.execute_disaster_recovery()


class TestFromConfiguration:
    def test_builds_default_components(self, tmp_path):
        plan_path = tmp_path / "plan.json"
        plan_path.write_text(
            json.dumps(
                {
                    "rto_minutes": 30,
                    "rpo_minutes": 10,
                    "recovery_steps": [{"id": "only", "description": "Only step"}],
                }
            )
        )
        config = BackupConfiguration(
            storage=StorageConfig(
                primary=str(tmp_path / "primary"),
                secondary=str(tmp_path / "secondary"),
            ),
            catalog_path=str(tmp_path / "catalog.json"),
            dr_plan_path=str(plan_path),
        )

        manager = BackupRecoveryManager.from_configuration(config)

        assert isinstance(manager.document_store, MongoDocumentStore)
        assert isinstance(manager.catalog, JsonFileBackupCatalog)
        assert isinstance(manager.secondary, LocalStorageClient)
        assert [s.id for s in manager.dr_orchestrator.plan.recovery_steps] == ["only"]

    def test_overrides_take_precedence(self, backup_config, document_store):
        manager = BackupRecoveryManager.from_configuration(
            backup_config, document_store=document_store
        )

        assert manager.document_store is document_store
        assert manager.secondary is None

"""
Unit tests for RestoreEngine.

Tests cover:
- Restore is idempotent (upsert)
- Restore of a subset of collections and target database override
- validate_only never touches the document store
- Integrity errors on tampered artifacts
- Not found / not restorable / unknown collection errors
- Per-document failures are counted and skipped
- Encrypted artifacts are encrypted again after validate and restore
"""

import os
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from carpool_backup.artifact_store import ArtifactStore
from carpool_backup.backup_engine import BackupEngine
from carpool_backup.config import BackupConfiguration, EncryptionConfig, StorageConfig
from carpool_backup.document_store import InMemoryDocumentStore
from carpool_backup.encryption import ArtifactEncryptor
from carpool_backup.exceptions import (
    BackupIntegrityError,
    BackupNotFoundError,
    BackupNotRestorableError,
    CollectionNotInBackupError,
    DocumentStoreError,
)
from carpool_backup.models import BackupStatus, RestoreOptions
from carpool_backup.restore_engine import RestoreEngine


@pytest.fixture
def completed_backup(backup_engine):
    return backup_engine.perform_full_backup()


def _snapshot(store):
    return {
        (db, coll): sorted(store.documents(db, coll), key=lambda d: d["_id"])
        for db in store.list_databases()
        for coll in store.list_collections(db)
    }


# ============================================================================
# Restore
# ============================================================================


class TestRestore:
    """Test restore flow."""

    def test_restore_recovers_modified_documents(
        self, restore_engine, document_store, completed_backup
    ):
        document_store.put_document("carpool", "users", {"_id": "user-0", "name": "Corrupted"})

        report = restore_engine.restore_from_backup(
            RestoreOptions(backup_id=completed_backup.id)
        )

        assert report.documents_restored == 8
        assert report.documents_failed == 0
        restored = {d["_id"]: d for d in document_store.documents("carpool", "users")}
        assert restored["user-0"]["name"] == "User 0"

    def test_restore_twice_is_idempotent(self, restore_engine, document_store, completed_backup):
        options = RestoreOptions(backup_id=completed_backup.id)

        restore_engine.restore_from_backup(options)
        after_first = _snapshot(document_store)
        restore_engine.restore_from_backup(options)

        assert _snapshot(document_store) == after_first

    def test_restore_does_not_delete_extra_documents(
        self, restore_engine, document_store, completed_backup
    ):
        document_store.put_document("carpool", "trips", {"_id": "trip-after-backup"})

        restore_engine.restore_from_backup(RestoreOptions(backup_id=completed_backup.id))

        ids = {d["_id"] for d in document_store.documents("carpool", "trips")}
        assert "trip-after-backup" in ids

    def test_restore_subset_only_touches_requested(
        self, restore_engine, document_store, completed_backup
    ):
        """Test restoring only trips leaves users untouched."""
        document_store.put_document("carpool", "users", {"_id": "user-1", "name": "Edited"})
        document_store.put_document("carpool", "trips", {"_id": "trip-1", "seats": 0})

        report = restore_engine.restore_from_backup(
            RestoreOptions(backup_id=completed_backup.id, collections=["trips"])
        )

        assert report.collections_restored == ["carpool.trips"]
        assert report.documents_restored == 3
        users = {d["_id"]: d for d in document_store.documents("carpool", "users")}
        trips = {d["_id"]: d for d in document_store.documents("carpool", "trips")}
        assert users["user-1"]["name"] == "Edited"
        assert trips["trip-1"]["seats"] == 3

    def test_restore_qualified_collection_name(self, restore_engine, completed_backup):
        report = restore_engine.restore_from_backup(
            RestoreOptions(backup_id=completed_backup.id, collections=["carpool.users"])
        )

        assert report.collections_restored == ["carpool.users"]
        assert report.documents_restored == 5

    def test_restore_into_target_database(
        self, restore_engine, document_store, completed_backup
    ):
        report = restore_engine.restore_from_backup(
            RestoreOptions(backup_id=completed_backup.id, target_database="carpool_restore")
        )

        assert report.target_database == "carpool_restore"
        assert len(document_store.documents("carpool_restore", "users")) == 5
        assert len(document_store.documents("carpool_restore", "trips")) == 3

    def test_restore_uses_batches(self, backup_config, catalog, artifact_store, completed_backup):
        """Test all documents are upserted across batches of restore_batch_size."""
        target = Mock()
        engine = RestoreEngine(backup_config, target, catalog, artifact_store)

        report = engine.restore_from_backup(
            RestoreOptions(backup_id=completed_backup.id, collections=["users"])
        )

        assert backup_config.restore_batch_size == 2
        assert target.upsert_document.call_count == 5
        assert report.documents_restored == 5

    def test_empty_incremental_restores_nothing(self, backup_engine, restore_engine):
        backup_engine.perform_full_backup()
        empty = backup_engine.perform_incremental_backup()

        report = restore_engine.restore_from_backup(RestoreOptions(backup_id=empty.id))

        assert report.collections_restored == []
        assert report.documents_restored == 0

    def test_per_document_failure_skipped(
        self, backup_config, catalog, artifact_store, metrics, completed_backup
    ):
        target = InMemoryDocumentStore()
        original_upsert = target.upsert_document

        def flaky_upsert(database_id, collection_id, document):
            if document["_id"] == "user-3":
                raise DocumentStoreError("write conflict")
            original_upsert(database_id, collection_id, document)

        target.upsert_document = flaky_upsert
        engine = RestoreEngine(backup_config, target, catalog, artifact_store, metrics=metrics)

        report = engine.restore_from_backup(RestoreOptions(backup_id=completed_backup.id))

        assert report.documents_failed == 1
        assert report.documents_restored == 7
        assert metrics.registry.get_sample_value(
            "carpool_backup_restore_failed_documents_total"
        ) == 1.0

    def test_point_in_time_is_only_a_hint(self, restore_engine, completed_backup):
        report = restore_engine.restore_from_backup(
            RestoreOptions(
                backup_id=completed_backup.id,
                point_in_time=datetime(2020, 1, 1, tzinfo=timezone.utc),
            )
        )

        assert report.documents_restored == 8


# ============================================================================
# Errors
# ============================================================================


class TestRestoreErrors:
    """Test restore error cases."""

    def test_unknown_backup(self, restore_engine):
        with pytest.raises(BackupNotFoundError, match="Backup nope not found"):
            restore_engine.restore_from_backup(RestoreOptions(backup_id="nope"))

    @pytest.mark.parametrize("status", [BackupStatus.FAILED, BackupStatus.IN_PROGRESS])
    def test_non_completed_backup_not_restorable(
        self, restore_engine, catalog, make_record, status
    ):
        catalog.add(make_record("broken", datetime.now(timezone.utc), status=status))

        with pytest.raises(BackupNotRestorableError):
            restore_engine.restore_from_backup(RestoreOptions(backup_id="broken"))

    def test_unknown_collection_rejected_before_any_write(
        self, backup_config, catalog, artifact_store, completed_backup
    ):
        target = Mock()
        engine = RestoreEngine(backup_config, target, catalog, artifact_store)

        with pytest.raises(CollectionNotInBackupError):
            engine.restore_from_backup(
                RestoreOptions(backup_id=completed_backup.id, collections=["users", "payments"])
            )

        target.upsert_document.assert_not_called()


# ============================================================================
# validate_only
# ============================================================================


class TestValidateOnly:
    """Test integrity validation."""

    def test_validate_intact_backup(self, backup_config, catalog, artifact_store, completed_backup):
        target = Mock()
        engine = RestoreEngine(backup_config, target, catalog, artifact_store)

        report = engine.restore_from_backup(
            RestoreOptions(backup_id=completed_backup.id, validate_only=True)
        )

        assert report.validate_only is True
        assert report.documents_restored == 0
        assert target.method_calls == []

    def test_tampered_manifest_detected(
        self, backup_config, catalog, artifact_store, completed_backup
    ):
        target = Mock()
        engine = RestoreEngine(backup_config, target, catalog, artifact_store)
        with open(artifact_store.manifest_path(completed_backup.id), "a") as f:
            f.write(" ")

        with pytest.raises(BackupIntegrityError, match="checksum mismatch"):
            engine.restore_from_backup(
                RestoreOptions(backup_id=completed_backup.id, validate_only=True)
            )

        assert target.method_calls == []

    def test_tampered_collection_detected(
        self, backup_config, catalog, artifact_store, completed_backup
    ):
        target = Mock()
        engine = RestoreEngine(backup_config, target, catalog, artifact_store)
        trips_path = artifact_store.collection_path(completed_backup.id, "carpool", "trips")
        with open(trips_path, "w") as f:
            f.write("[]")

        with pytest.raises(BackupIntegrityError, match="carpool.trips"):
            engine.restore_from_backup(
                RestoreOptions(backup_id=completed_backup.id, validate_only=True)
            )

        assert target.method_calls == []

    def test_missing_manifest_detected(self, restore_engine, artifact_store, completed_backup):
        os.remove(artifact_store.manifest_path(completed_backup.id))

        with pytest.raises(BackupIntegrityError):
            restore_engine.restore_from_backup(
                RestoreOptions(backup_id=completed_backup.id, validate_only=True)
            )


# ============================================================================
# Encrypted backups
# ============================================================================


class XorArtifactEncryptor(ArtifactEncryptor):
    """Criptografia reversível (XOR) para os testes."""

    def _xor(self, paths):
        for path in paths:
            with open(path, "rb") as f:
                data = f.read()
            with open(path, "wb") as f:
                f.write(bytes(b ^ 0x5A for b in data))

    def encrypt(self, backup_id, paths):
        self._xor(paths)

    def decrypt(self, backup_id, paths):
        self._xor(paths)


class TestEncryptedBackups:
    """Test artifacts stay encrypted at rest across validate and restore."""

    @pytest.fixture
    def encrypted_config(self, tmp_path):
        return BackupConfiguration(
            storage=StorageConfig(primary=str(tmp_path / "encrypted")),
            encryption=EncryptionConfig(enabled=True, key_id="key-1"),
        )

    @pytest.fixture
    def engines(self, encrypted_config, document_store, catalog):
        artifact_store = ArtifactStore(encrypted_config.storage.primary)
        encryptor = XorArtifactEncryptor("key-1")
        backup = BackupEngine(
            encrypted_config, document_store, catalog, artifact_store, encryptor=encryptor
        )
        restore = RestoreEngine(
            encrypted_config, document_store, catalog, artifact_store, encryptor=encryptor
        )
        return backup, restore, artifact_store

    def _read_all(self, artifact_store, backup_id):
        contents = {}
        for path in artifact_store.artifact_paths(backup_id):
            with open(path, "rb") as f:
                contents[path] = f.read()
        return contents

    def test_validate_twice_leaves_artifacts_encrypted(self, engines):
        backup_engine, restore_engine, artifact_store = engines
        metadata = backup_engine.perform_full_backup()
        at_rest = self._read_all(artifact_store, metadata.id)

        for _ in range(2):
            report = restore_engine.restore_from_backup(
                RestoreOptions(backup_id=metadata.id, validate_only=True)
            )
            assert report.validate_only is True

        assert self._read_all(artifact_store, metadata.id) == at_rest

    def test_restore_after_validate(self, engines, document_store):
        backup_engine, restore_engine, artifact_store = engines
        metadata = backup_engine.perform_full_backup()
        at_rest = self._read_all(artifact_store, metadata.id)
        document_store.put_document("carpool", "users", {"_id": "user-1", "name": "Changed"})

        restore_engine.restore_from_backup(
            RestoreOptions(backup_id=metadata.id, validate_only=True)
        )
        report = restore_engine.restore_from_backup(RestoreOptions(backup_id=metadata.id))

        assert report.documents_restored == 8
        users = {d["_id"]: d for d in document_store.documents("carpool", "users")}
        assert users["user-1"]["name"] == "User 1"
        assert self._read_all(artifact_store, metadata.id) == at_rest

    def test_failed_validation_still_reencrypts(self, engines):
        backup_engine, restore_engine, artifact_store = engines
        metadata = backup_engine.perform_full_backup()
        with open(artifact_store.collection_path(metadata.id, "carpool", "trips"), "ab") as f:
            f.write(b"\x00")
        at_rest = self._read_all(artifact_store, metadata.id)

        with pytest.raises(BackupIntegrityError):
            restore_engine.restore_from_backup(
                RestoreOptions(backup_id=metadata.id, validate_only=True)
            )

        assert self._read_all(artifact_store, metadata.id) == at_rest

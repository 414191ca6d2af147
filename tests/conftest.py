"""
Fixtures compartilhadas para os testes do carpool_backup.
"""

from datetime import datetime, timezone

import pytest

from carpool_backup.artifact_store import ArtifactStore
from carpool_backup.backup_engine import BackupEngine
from carpool_backup.catalog import InMemoryBackupCatalog
from carpool_backup.config import BackupConfiguration, StorageConfig
from carpool_backup.document_store import InMemoryDocumentStore
from carpool_backup.metrics import BackupMetrics
from carpool_backup.models import BackupMetadata, BackupStatus, BackupType
from carpool_backup.restore_engine import RestoreEngine

# Epoch (segundos) anterior a qualquer backup executado nos testes
OLD_TS = 1_600_000_000


# ============================================================================
# Fixtures de Configuração
# ============================================================================

@pytest.fixture
def backup_config(tmp_path):
    """BackupConfiguration apontando para diretório temporário."""
    return BackupConfiguration(
        storage=StorageConfig(primary=str(tmp_path / "backups")),
        restore_batch_size=2,
        log_level="DEBUG",
    )


# ============================================================================
# Fixtures de Componentes
# ============================================================================

@pytest.fixture
def document_store():
    """InMemoryDocumentStore com database 'carpool' (users e trips)."""
    store = InMemoryDocumentStore()
    for i in range(5):
        store.put_document(
            "carpool", "users", {"_id": f"user-{i}", "name": f"User {i}", "_ts": OLD_TS}
        )
    for i in range(3):
        store.put_document(
            "carpool",
            "trips",
            {"_id": f"trip-{i}", "driver": f"user-{i}", "seats": 3, "_ts": OLD_TS},
        )
    return store


@pytest.fixture
def catalog():
    return InMemoryBackupCatalog()


@pytest.fixture
def artifact_store(backup_config):
    return ArtifactStore(backup_config.storage.primary)


@pytest.fixture
def metrics():
    return BackupMetrics()


@pytest.fixture
def backup_engine(backup_config, document_store, catalog, artifact_store, metrics):
    return BackupEngine(
        backup_config, document_store, catalog, artifact_store, metrics=metrics
    )


@pytest.fixture
def restore_engine(backup_config, document_store, catalog, artifact_store, metrics):
    return RestoreEngine(
        backup_config, document_store, catalog, artifact_store, metrics=metrics
    )


@pytest.fixture
def make_record():
    """Factory de BackupMetadata com timestamp e status arbitrários."""

    def _make(
        backup_id: str,
        timestamp: datetime,
        status: BackupStatus = BackupStatus.COMPLETED,
        backup_type: BackupType = BackupType.FULL,
        size: int = 100,
        **kwargs,
    ) -> BackupMetadata:
        return BackupMetadata(
            id=backup_id,
            type=backup_type,
            timestamp=timestamp.astimezone(timezone.utc),
            size=size,
            status=status,
            **kwargs,
        )

    return _make

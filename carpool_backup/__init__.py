"""
Carpool Backup

Backup e disaster recovery do banco de documentos do carpool. Fornece backups
full e incrementais com checksums SHA-256, restore idempotente via upsert,
limpeza por retenção, agendamento periódico e execução do plano de disaster
recovery.

Versão: 1.0.0
"""

from .config import BackupConfiguration
from .models import (
    BackupType,
    BackupStatus,
    BackupMetadata,
    RestoreOptions,
    RestoreReport,
    Contact,
    RecoveryStep,
    DisasterRecoveryPlan,
    DisasterRecoveryReport,
    BackupMetricsSummary,
)
from .exceptions import (
    BackupError,
    DocumentStoreError,
    BackupNotFoundError,
    BackupNotRestorableError,
    BackupIntegrityError,
    CollectionNotInBackupError,
    BackupInProgressError,
    InvalidStatusTransitionError,
    SecondaryStorageError,
    DisasterRecoveryError,
    RecoveryScriptError,
    SystemHealthCheckError,
    PlanValidationError,
)
from .document_store import DocumentStore, MongoDocumentStore, InMemoryDocumentStore
from .catalog import BackupCatalog, InMemoryBackupCatalog, JsonFileBackupCatalog
from .disaster_recovery import DisasterRecoveryOrchestrator, default_recovery_plan
from .manager import BackupRecoveryManager

__version__ = "1.0.0"

__all__ = [
    "BackupConfiguration",
    "BackupType",
    "BackupStatus",
    "BackupMetadata",
    "RestoreOptions",
    "RestoreReport",
    "Contact",
    "RecoveryStep",
    "DisasterRecoveryPlan",
    "DisasterRecoveryReport",
    "BackupMetricsSummary",
    "BackupError",
    "DocumentStoreError",
    "BackupNotFoundError",
    "BackupNotRestorableError",
    "BackupIntegrityError",
    "CollectionNotInBackupError",
    "BackupInProgressError",
    "InvalidStatusTransitionError",
    "SecondaryStorageError",
    "DisasterRecoveryError",
    "RecoveryScriptError",
    "SystemHealthCheckError",
    "PlanValidationError",
    "DocumentStore",
    "MongoDocumentStore",
    "InMemoryDocumentStore",
    "BackupCatalog",
    "InMemoryBackupCatalog",
    "JsonFileBackupCatalog",
    "DisasterRecoveryOrchestrator",
    "default_recovery_plan",
    "BackupRecoveryManager",
]

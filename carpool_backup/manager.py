"""
BackupRecoveryManager: fachada do backup e disaster recovery.

Monta os componentes a partir de BackupConfiguration e expõe o contrato
público: backup full/incremental, restore, disaster recovery e métricas.
"""

import os
from datetime import datetime
from typing import Dict, Optional

import structlog

from .artifact_store import ArtifactStore
from .backup_engine import BackupEngine
from .catalog import BackupCatalog, InMemoryBackupCatalog, JsonFileBackupCatalog
from .command_runner import CommandRunner, SubprocessCommandRunner
from .config import BackupConfiguration
from .disaster_recovery import (
    DisasterRecoveryOrchestrator,
    DocumentStoreHealthCheck,
    HealthCheck,
    StepHandler,
    default_recovery_plan,
)
from .document_store import DocumentStore, MongoDocumentStore
from .encryption import ArtifactEncryptor, NoopArtifactEncryptor
from .exceptions import DisasterRecoveryError, SystemHealthCheckError
from .metrics import BackupMetrics
from .models import (
    BackupMetadata,
    BackupStatus,
    BackupType,
    BackupMetricsSummary,
    DisasterRecoveryPlan,
    DisasterRecoveryReport,
    RecoveryStep,
    RestoreOptions,
    RestoreReport,
)
from .notifications import AlertNotifier
from .restore_engine import RestoreEngine
from .retention import RetentionManager, RetentionReport
from .scheduler import BackupScheduler
from .storage_client import StorageClient, create_storage_client

logger = structlog.get_logger(__name__)

# Catálogo persistido ao lado dos artefatos quando catalog_path não é informado
DEFAULT_CATALOG_FILE = "catalog.json"


class BackupRecoveryManager:
    """
    Gerenciador de backup e disaster recovery do carpool.

    Componentes:
    - BackupEngine: execuções full/incrementais
    - RestoreEngine: restore e validação de integridade
    - RetentionManager: limpeza de backups expirados
    - BackupScheduler: jobs periódicos
    - DisasterRecoveryOrchestrator: playbook de DR
    """

    def __init__(
        self,
        config: BackupConfiguration,
        document_store: DocumentStore,
        catalog: Optional[BackupCatalog] = None,
        secondary: Optional[StorageClient] = None,
        encryptor: Optional[ArtifactEncryptor] = None,
        plan: Optional[DisasterRecoveryPlan] = None,
        command_runner: Optional[CommandRunner] = None,
        notifier: Optional[AlertNotifier] = None,
        health_check: Optional[HealthCheck] = None,
        metrics: Optional[BackupMetrics] = None,
    ):
        self.config = config
        self.document_store = document_store
        self.catalog = catalog or InMemoryBackupCatalog()
        self.secondary = secondary
        self.metrics = metrics or BackupMetrics()

        encryptor = encryptor or NoopArtifactEncryptor(config.encryption.key_id)
        self.artifact_store = ArtifactStore(config.storage.primary)

        self.backup_engine = BackupEngine(
            config,
            document_store,
            self.catalog,
            self.artifact_store,
            encryptor=encryptor,
            secondary=secondary,
            metrics=self.metrics,
        )
        self.restore_engine = RestoreEngine(
            config,
            document_store,
            self.catalog,
            self.artifact_store,
            encryptor=encryptor,
            metrics=self.metrics,
        )
        self.retention_manager = RetentionManager(
            config.retention,
            self.catalog,
            self.artifact_store,
            secondary=secondary,
            metrics=self.metrics,
        )
        self.scheduler = BackupScheduler(
            config.schedule,
            full_backup=self.perform_full_backup,
            incremental_backup=self.perform_incremental_backup,
            retention_cleanup=self.cleanup_old_backups,
            metrics=self.metrics,
        )

        step_handlers: Dict[str, StepHandler] = {
            "restore_database": self._restore_latest_backup,
            "verify_services": self._verify_services,
        }
        self.dr_orchestrator = DisasterRecoveryOrchestrator(
            plan or default_recovery_plan(),
            command_runner or SubprocessCommandRunner(config.script_timeout_seconds),
            notifier=notifier,
            health_check=health_check or DocumentStoreHealthCheck(document_store),
            step_handlers=step_handlers,
            metrics=self.metrics,
        )

        logger.info(
            "BackupRecoveryManager inicializado",
            primary=config.storage.primary,
            secondary=config.storage.secondary,
            encryption_enabled=config.encryption.enabled,
        )

    @classmethod
    def from_configuration(cls, config: BackupConfiguration, **overrides) -> "BackupRecoveryManager":
        """
        Constrói manager com implementações padrão derivadas da configuração.

        Args:
            config: BackupConfiguration
            **overrides: Componentes a substituir (document_store, catalog, ...)
        """
        if "document_store" not in overrides:
            overrides["document_store"] = MongoDocumentStore(
                config.mongodb_uri,
                modified_field=config.modified_field,
                id_field=config.document_id_field,
            )

        if "catalog" not in overrides:
            overrides["catalog"] = JsonFileBackupCatalog(
                config.catalog_path
                or os.path.join(config.storage.primary, DEFAULT_CATALOG_FILE)
            )

        if "secondary" not in overrides and config.storage.secondary:
            overrides["secondary"] = create_storage_client(
                config.storage.secondary, region=config.storage.s3_region
            )

        if "plan" not in overrides and config.dr_plan_path:
            overrides["plan"] = DisasterRecoveryPlan.from_file(config.dr_plan_path)

        return cls(config, **overrides)

    def perform_full_backup(self) -> BackupMetadata:
        return self.backup_engine.perform_full_backup()

    def perform_incremental_backup(self, since: Optional[datetime] = None) -> BackupMetadata:
        return self.backup_engine.perform_incremental_backup(since=since)

    def restore_from_backup(self, options: RestoreOptions) -> RestoreReport:
        return self.restore_engine.restore_from_backup(options)

    def cleanup_old_backups(self, now: Optional[datetime] = None) -> RetentionReport:
        return self.retention_manager.cleanup(now=now)

    def execute_disaster_recovery(self) -> DisasterRecoveryReport:
        return self.dr_orchestrator.execute_disaster_recovery()

    def get_backup_metrics(self) -> BackupMetricsSummary:
        """
        Métricas do catálogo; uso do secundário vem da listagem do próprio
        storage secundário.
        """
        summary = self.catalog.get_metrics()
        if self.secondary is not None:
            summary.storage_usage.secondary = sum(
                item["size"] for item in self.secondary.list_backups()
            )
        return summary

    def _restore_latest_backup(self, step: RecoveryStep) -> None:
        """
        Restaura o último backup full e, em seguida, cada incremental
        completed posterior a ele, do mais antigo para o mais recente.
        """
        base = self.catalog.last_completed(BackupType.FULL)
        if base is None:
            raise DisasterRecoveryError("Nenhum backup full completed disponível para restore")

        incrementals = [
            record
            for record in self.catalog.list(
                status=BackupStatus.COMPLETED, backup_type=BackupType.INCREMENTAL
            )
            if record.timestamp > base.timestamp
        ]

        logger.info(
            "Restaurando cadeia de backups",
            step_id=step.id,
            full_backup_id=base.id,
            incremental_count=len(incrementals),
        )

        for record in [base] + incrementals:
            self.restore_from_backup(RestoreOptions(backup_id=record.id))

    def _verify_services(self, step: RecoveryStep) -> None:
        if not self.document_store.ping():
            raise SystemHealthCheckError(f"Document store indisponível no passo {step.id}")

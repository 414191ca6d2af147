"""
RetentionManager: limpeza de backups expirados.

Cutoffs calculados a partir da configuração de retenção:
- daily: agora - N dias
- weekly: agora - N*7 dias
- monthly: agora - N*30 dias

Apenas o cutoff diário é aplicado: todo registro finalizado mais antigo que
ele é removido. Os cutoffs semanal e mensal são reportados, mas não
preservam backups antigos. Registros in_progress só são removidos depois
do cutoff mensal.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field

from .artifact_store import ArtifactStore
from .catalog import BackupCatalog
from .config import RetentionConfig
from .metrics import BackupMetrics
from .models import BackupStatus
from .storage_client import StorageClient

logger = structlog.get_logger(__name__)


class RetentionReport(BaseModel):
    """Resultado de um ciclo de limpeza."""

    daily_cutoff: datetime
    weekly_cutoff: datetime
    monthly_cutoff: datetime
    deleted: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class RetentionManager:
    """Remove artefatos e registros de backups fora da janela de retenção."""

    def __init__(
        self,
        retention: RetentionConfig,
        catalog: BackupCatalog,
        artifact_store: ArtifactStore,
        secondary: Optional[StorageClient] = None,
        metrics: Optional[BackupMetrics] = None,
    ):
        self.retention = retention
        self.catalog = catalog
        self.artifact_store = artifact_store
        self.secondary = secondary
        self.metrics = metrics

    def cleanup(self, now: Optional[datetime] = None) -> RetentionReport:
        """
        Executa limpeza de backups expirados.

        Args:
            now: Referência de tempo (default: agora em UTC)

        Returns:
            RetentionReport com ids removidos e ids mantidos por falha
        """
        now = now or datetime.now(timezone.utc)

        report = RetentionReport(
            daily_cutoff=now - timedelta(days=self.retention.daily),
            weekly_cutoff=now - timedelta(days=self.retention.weekly * 7),
            monthly_cutoff=now - timedelta(days=self.retention.monthly * 30),
        )

        logger.info(
            "Iniciando limpeza de backups expirados",
            daily_cutoff=report.daily_cutoff.isoformat(),
            weekly_cutoff=report.weekly_cutoff.isoformat(),
            monthly_cutoff=report.monthly_cutoff.isoformat(),
        )

        for record in self.catalog.list():
            # in_progress mais antigo que o cutoff mensal é uma execução
            # interrompida (ex: processo encerrado no meio do backup)
            if (
                record.status == BackupStatus.IN_PROGRESS
                and record.timestamp >= report.monthly_cutoff
            ):
                continue
            if record.timestamp >= report.daily_cutoff:
                continue

            remote_keys = self.artifact_store.artifact_files(record.id)

            try:
                self.artifact_store.delete_backup(record.id)
            except OSError as e:
                logger.error(
                    "Erro ao deletar artefatos de backup, mantendo registro",
                    backup_id=record.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                report.failed.append(record.id)
                continue

            if self.secondary is not None and record.secondary_copied:
                for key in remote_keys:
                    if not self.secondary.delete_backup(key):
                        logger.warning(
                            "Falha ao deletar cópia secundária",
                            backup_id=record.id,
                            remote_key=key,
                        )

            self.catalog.remove(record.id)
            report.deleted.append(record.id)

            logger.info(
                "Backup expirado removido",
                backup_id=record.id,
                backup_type=record.type.value,
                timestamp=record.timestamp.isoformat(),
            )

        if self.metrics and report.deleted:
            self.metrics.retention_deleted_total.inc(len(report.deleted))

        logger.info(
            "Limpeza de backups concluída",
            deleted_count=len(report.deleted),
            failed_count=len(report.failed),
        )

        return report

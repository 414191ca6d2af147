"""
Métricas Prometheus do backup e disaster recovery.
"""

from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

logger = structlog.get_logger(__name__)


class BackupMetrics:
    """Métricas de backup, restore, retenção, scheduler e DR."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        # Registry próprio evita registro duplicado entre instâncias
        self.registry = registry or CollectorRegistry()
        self._initialize_metrics()

        logger.debug("BackupMetrics inicializado")

    def _initialize_metrics(self):
        """Inicializa métricas Prometheus."""

        self.backups_total = Counter(
            "carpool_backup_runs_total",
            "Total de execuções de backup",
            ["backup_type", "status"],
            registry=self.registry,
        )

        self.backup_duration_seconds = Histogram(
            "carpool_backup_duration_seconds",
            "Duração das execuções de backup em segundos",
            ["backup_type"],
            buckets=[1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0],
            registry=self.registry,
        )

        self.backup_size_bytes = Gauge(
            "carpool_backup_last_size_bytes",
            "Tamanho do último backup concluído",
            ["backup_type"],
            registry=self.registry,
        )

        self.last_success_timestamp = Gauge(
            "carpool_backup_last_success_timestamp_seconds",
            "Epoch do último backup concluído",
            ["backup_type"],
            registry=self.registry,
        )

        self.restored_documents_total = Counter(
            "carpool_backup_restored_documents_total",
            "Documentos restaurados via upsert",
            registry=self.registry,
        )

        self.restore_failed_documents_total = Counter(
            "carpool_backup_restore_failed_documents_total",
            "Documentos que falharam no restore (ignorados)",
            registry=self.registry,
        )

        self.retention_deleted_total = Counter(
            "carpool_backup_retention_deleted_total",
            "Backups removidos pela política de retenção",
            registry=self.registry,
        )

        self.scheduler_runs_total = Counter(
            "carpool_backup_scheduler_runs_total",
            "Execuções de jobs agendados",
            ["job", "outcome"],
            registry=self.registry,
        )

        self.dr_steps_total = Counter(
            "carpool_backup_dr_steps_total",
            "Passos de disaster recovery executados",
            ["outcome"],
            registry=self.registry,
        )

    def observe_backup(self, backup_type: str, status: str, duration_seconds: float,
                       size_bytes: int = 0, completed_at: Optional[float] = None) -> None:
        self.backups_total.labels(backup_type=backup_type, status=status).inc()
        self.backup_duration_seconds.labels(backup_type=backup_type).observe(duration_seconds)
        if status == "completed":
            self.backup_size_bytes.labels(backup_type=backup_type).set(size_bytes)
            if completed_at is not None:
                self.last_success_timestamp.labels(backup_type=backup_type).set(completed_at)

    def observe_restore(self, restored: int, failed: int) -> None:
        self.restored_documents_total.inc(restored)
        if failed:
            self.restore_failed_documents_total.inc(failed)

    def observe_scheduler_run(self, job: str, outcome: str) -> None:
        self.scheduler_runs_total.labels(job=job, outcome=outcome).inc()

"""
BackupScheduler: jobs periódicos de backup full, incremental e limpeza.

Cada job roda em seu próprio loop asyncio com ticks em cadência fixa e
execução em thread. Falhas são registradas e nunca interrompem execuções
seguintes; um tick que dispara enquanto a execução anterior do mesmo job
ainda está ativa é ignorado com warning.
"""

import asyncio
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

import structlog
from pydantic import BaseModel

from .config import ScheduleConfig
from .metrics import BackupMetrics

logger = structlog.get_logger(__name__)

FULL_BACKUP_JOB = "full_backup"
INCREMENTAL_BACKUP_JOB = "incremental_backup"
RETENTION_CLEANUP_JOB = "retention_cleanup"


class JobStats(BaseModel):
    runs: int = 0
    failures: int = 0
    skipped: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None


class ScheduledJob:
    """Job periódico com guarda de reentrância."""

    def __init__(self, name: str, interval_seconds: float, func: Callable[[], object]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.stats = JobStats()
        self.lock = threading.Lock()


class BackupScheduler:
    """Agenda e executa os jobs de backup."""

    def __init__(
        self,
        schedule: ScheduleConfig,
        full_backup: Callable[[], object],
        incremental_backup: Callable[[], object],
        retention_cleanup: Callable[[], object],
        metrics: Optional[BackupMetrics] = None,
    ):
        self.schedule = schedule
        self.metrics = metrics

        self.jobs: Dict[str, ScheduledJob] = {
            FULL_BACKUP_JOB: ScheduledJob(
                FULL_BACKUP_JOB, schedule.full_interval_seconds, full_backup
            ),
            INCREMENTAL_BACKUP_JOB: ScheduledJob(
                INCREMENTAL_BACKUP_JOB, schedule.incremental_interval_seconds, incremental_backup
            ),
            RETENTION_CLEANUP_JOB: ScheduledJob(
                RETENTION_CLEANUP_JOB, schedule.cleanup_interval_seconds, retention_cleanup
            ),
        }

        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._runs: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._running

    def stats(self, name: str) -> JobStats:
        return self._get_job(name).stats.model_copy()

    async def start(self):
        """Inicia um loop asyncio por job."""
        if self._running:
            logger.warning("Scheduler de backup já em execução")
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._job_loop(job), name=f"backup-{job.name}")
            for job in self.jobs.values()
        ]

        logger.info(
            "Scheduler de backup iniciado",
            full_cron=self.schedule.full,
            incremental_cron=self.schedule.incremental,
            intervals={name: job.interval_seconds for name, job in self.jobs.items()},
        )

    async def stop(self):
        """Cancela os loops dos jobs."""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        # Execuções em thread não são interrompíveis; aguarda término
        if self._runs:
            await asyncio.gather(*list(self._runs))

        logger.info("Scheduler de backup parado")

    async def _job_loop(self, job: ScheduledJob):
        """
        Dispara o job em ticks fixos (relógio monotônico do loop).

        A execução roda em thread sem bloquear o próximo tick; um tick que
        encontra a execução anterior ainda ativa é ignorado em _run_job.
        """
        loop = asyncio.get_running_loop()
        next_run = loop.time() + job.interval_seconds

        while self._running:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            next_run += job.interval_seconds

            run = asyncio.create_task(asyncio.to_thread(self._run_job, job))
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)

    def trigger(self, name: str) -> bool:
        """
        Executa um job imediatamente (síncrono).

        Returns:
            True se executou (com sucesso ou falha), False se ignorado por
            já haver execução ativa do mesmo job
        """
        return self._run_job(self._get_job(name))

    def _get_job(self, name: str) -> ScheduledJob:
        if name not in self.jobs:
            raise ValueError(f"Job desconhecido: {name}")
        return self.jobs[name]

    def _run_job(self, job: ScheduledJob) -> bool:
        if not job.lock.acquire(blocking=False):
            job.stats.skipped += 1
            logger.warning("Execução anterior ainda ativa, ignorando", job=job.name)
            self._observe(job.name, "skipped")
            return False

        try:
            job.stats.runs += 1
            job.stats.last_run = datetime.now(timezone.utc)

            try:
                job.func()
                job.stats.last_error = None
                self._observe(job.name, "success")
                logger.info("Job agendado concluído", job=job.name)
            except Exception as e:
                job.stats.failures += 1
                job.stats.last_error = str(e)
                self._observe(job.name, "failed")
                logger.error(
                    "Erro em job agendado",
                    job=job.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            return True

        finally:
            job.lock.release()

    def _observe(self, job_name: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.observe_scheduler_run(job_name, outcome)

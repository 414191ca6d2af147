"""
DisasterRecoveryOrchestrator: executa o plano de disaster recovery.

Fluxo:
1. Notificar todos os contatos (falha de notificação não interrompe)
2. Executar passos na ordem literal do plano
   - automatizado com script: CommandRunner (exit code != 0 aborta)
   - automatizado com handler registrado: chama handler
   - demais: intervenção manual registrada em log
3. Verificar saúde do sistema
4. Comparar tempo total com o RTO do plano
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import structlog

from .command_runner import CommandRunner
from .document_store import DocumentStore
from .exceptions import RecoveryScriptError, SystemHealthCheckError
from .metrics import BackupMetrics
from .models import (
    Contact,
    DisasterRecoveryPlan,
    DisasterRecoveryReport,
    RecoveryStep,
    StepOutcome,
    StepResult,
)
from .notifications import AlertNotifier, LoggingAlertNotifier

logger = structlog.get_logger(__name__)

StepHandler = Callable[[RecoveryStep], None]
HealthCheck = Callable[[], Dict[str, Any]]


def default_recovery_plan() -> DisasterRecoveryPlan:
    """Plano padrão do carpool (RTO 60 min, RPO 15 min)."""
    return DisasterRecoveryPlan(
        rto=timedelta(minutes=60),
        rpo=timedelta(minutes=15),
        critical_components=[
            "database",
            "authentication_service",
            "api_gateway",
            "user_management",
            "carpool_management",
        ],
        recovery_steps=[
            RecoveryStep(
                id="assess_damage",
                description="Assess the extent of the disaster and affected components",
                automated=False,
                estimated_time=timedelta(minutes=15),
            ),
            RecoveryStep(
                id="activate_secondary_region",
                description="Activate secondary Azure region if primary is unavailable",
                automated=True,
                estimated_time=timedelta(minutes=10),
                script="az functionapp restart --name carpool-functions-secondary --resource-group carpool-rg",
            ),
            RecoveryStep(
                id="restore_database",
                description="Restore database from latest backup",
                automated=True,
                estimated_time=timedelta(minutes=30),
                dependencies=["assess_damage"],
            ),
            RecoveryStep(
                id="verify_services",
                description="Verify all critical services are operational",
                automated=True,
                estimated_time=timedelta(minutes=10),
                dependencies=["restore_database"],
            ),
            RecoveryStep(
                id="notify_users",
                description="Notify users that services have been restored",
                automated=False,
                estimated_time=timedelta(minutes=5),
                dependencies=["verify_services"],
            ),
        ],
        contact_list=[
            Contact(
                name="System Administrator",
                role="Primary Contact",
                email="admin@carpool.com",
                phone="+1-555-0100",
            ),
            Contact(
                name="Database Administrator",
                role="Database Recovery",
                email="dba@carpool.com",
                phone="+1-555-0101",
            ),
        ],
    )


class DocumentStoreHealthCheck:
    """Health check baseado em ping do document store."""

    def __init__(self, document_store: DocumentStore):
        self.document_store = document_store

    def __call__(self) -> Dict[str, Any]:
        database_ok = self.document_store.ping()
        return {
            "healthy": database_ok,
            "components": {"database": "healthy" if database_ok else "unhealthy"},
        }


class DisasterRecoveryOrchestrator:
    """Executa o playbook de disaster recovery."""

    def __init__(
        self,
        plan: DisasterRecoveryPlan,
        command_runner: CommandRunner,
        notifier: Optional[AlertNotifier] = None,
        health_check: Optional[HealthCheck] = None,
        step_handlers: Optional[Dict[str, StepHandler]] = None,
        metrics: Optional[BackupMetrics] = None,
    ):
        """
        Inicializa orquestrador.

        Args:
            plan: Plano de DR (validado aqui; ids duplicados levantam
                PlanValidationError)
            command_runner: Executor de scripts dos passos automatizados
            notifier: Notificador de contatos (default: log critical)
            health_check: Callable que retorna dict com chave 'healthy'
            step_handlers: Handlers por id de passo automatizado sem script
            metrics: Métricas Prometheus (opcional)
        """
        self.plan = plan
        self.command_runner = command_runner
        self.notifier = notifier or LoggingAlertNotifier()
        self.health_check = health_check
        self.step_handlers = dict(step_handlers or {})
        self.metrics = metrics

        for warning in plan.validate_steps():
            logger.warning("Plano de DR com dependência inconsistente", detail=warning)

    def register_handler(self, step_id: str, handler: StepHandler) -> None:
        self.step_handlers[step_id] = handler

    def execute_disaster_recovery(self) -> DisasterRecoveryReport:
        """
        Executa o plano de disaster recovery.

        Returns:
            DisasterRecoveryReport com resultado de cada passo

        Raises:
            RecoveryScriptError: Script de passo automatizado falhou
            SystemHealthCheckError: Sistema não saudável após recovery
        """
        start_time = time.monotonic()
        report = DisasterRecoveryReport(started_at=datetime.now(timezone.utc))
        rto_minutes = int(self.plan.rto.total_seconds() // 60)

        logger.critical(
            "DISASTER RECOVERY INITIATED",
            rto_minutes=rto_minutes,
            steps=len(self.plan.recovery_steps),
        )

        report.contacts_notified = self._notify_contacts(
            f"DISASTER RECOVERY INITIATED - RTO: {rto_minutes} minutes"
        )

        for step in self.plan.recovery_steps:
            logger.info(
                "Executando passo de recovery",
                step_id=step.id,
                description=step.description,
                automated=step.automated,
            )

            try:
                result = self._execute_step(step)
            except Exception as e:
                logger.error(
                    "Passo de recovery falhou, abortando",
                    step_id=step.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if self.metrics:
                    self.metrics.dr_steps_total.labels(outcome="failed").inc()
                raise

            report.steps.append(result)
            if result.outcome == StepOutcome.MANUAL:
                report.manual_steps.append(step.id)
            if self.metrics:
                self.metrics.dr_steps_total.labels(outcome=result.outcome.value).inc()

        report.health = self._verify_system_health()

        elapsed = time.monotonic() - start_time
        if elapsed > self.plan.rto.total_seconds():
            report.rto_exceeded = True
            logger.warning(
                "Recovery excedeu o RTO",
                elapsed_minutes=round(elapsed / 60, 2),
                rto_minutes=rto_minutes,
            )

        report.completed_at = datetime.now(timezone.utc)

        logger.info(
            "Disaster recovery concluído",
            elapsed_seconds=round(elapsed, 2),
            manual_steps=report.manual_steps,
        )

        return report

    def _notify_contacts(self, message: str) -> int:
        notified = 0
        for contact in self.plan.contact_list:
            try:
                self.notifier.critical_alert(contact, message)
                notified += 1
            except Exception as e:
                logger.error(
                    "Erro ao notificar contato",
                    contact=contact.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return notified

    def _execute_step(self, step: RecoveryStep) -> StepResult:
        step_start = time.monotonic()

        if step.automated and step.script:
            command_result = self.command_runner.run(step.script)

            logger.info(
                "Script de recovery executado",
                step_id=step.id,
                exit_code=command_result.exit_code,
                stdout=command_result.stdout,
                stderr=command_result.stderr,
            )

            if command_result.exit_code != 0:
                raise RecoveryScriptError(
                    step.script, command_result.exit_code, command_result.stderr
                )

            return StepResult(
                step_id=step.id,
                outcome=StepOutcome.SCRIPT_EXECUTED,
                duration_seconds=time.monotonic() - step_start,
                stdout=command_result.stdout,
                stderr=command_result.stderr,
            )

        if step.automated and step.id in self.step_handlers:
            self.step_handlers[step.id](step)
            return StepResult(
                step_id=step.id,
                outcome=StepOutcome.HANDLER_EXECUTED,
                duration_seconds=time.monotonic() - step_start,
            )

        logger.warning(
            "Intervenção manual necessária",
            step_id=step.id,
            description=step.description,
            estimated_minutes=int(step.estimated_time.total_seconds() // 60),
        )
        return StepResult(step_id=step.id, outcome=StepOutcome.MANUAL)

    def _verify_system_health(self) -> Dict[str, Any]:
        if self.health_check is None:
            logger.warning("Health check não configurado, verificação ignorada")
            return {}

        health = self.health_check()
        if not health.get("healthy", False):
            logger.error("Sistema não saudável após recovery", health=health)
            raise SystemHealthCheckError(f"System health check failed after recovery: {health}")

        logger.info("Sistema saudável após recovery", health=health)
        return health

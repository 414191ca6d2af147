"""
Modelos Pydantic do backup e disaster recovery.

- BackupMetadata: registro de uma execução de backup (catálogo)
- RestoreOptions / RestoreReport: entrada e resultado de restore
- DisasterRecoveryPlan / RecoveryStep / Contact: playbook de DR
- BackupMetricsSummary: métricas derivadas do catálogo
"""

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .exceptions import InvalidStatusTransitionError, PlanValidationError


class BackupType(str, Enum):
    """Tipo de backup."""

    FULL = "full"
    INCREMENTAL = "incremental"


class BackupStatus(str, Enum):
    """Status de uma execução de backup."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_backup_id(backup_type: BackupType, timestamp: datetime) -> str:
    """
    Gera identificador único por execução.

    Formato: <type>_backup_<timestamp ISO com ':' e '.' trocados por '-'>_<sufixo>
    """
    stamp = timestamp.isoformat().replace(":", "-").replace(".", "-")
    return f"{backup_type.value}_backup_{stamp}_{uuid.uuid4().hex[:6]}"


class BackupMetadata(BaseModel):
    """
    Registro de uma execução de backup.

    Status só transiciona in_progress -> completed ou in_progress -> failed.
    Um retry é uma nova execução com novo identificador.
    """

    id: str = Field(description="Identificador único da execução")
    type: BackupType = Field(description="full ou incremental")
    timestamp: datetime = Field(description="Início da execução (UTC)")
    size: int = Field(default=0, description="Tamanho do manifest em bytes")
    collections: List[str] = Field(
        default_factory=list, description="Collections incluídas (<database>.<collection>)"
    )
    checksum: str = Field(default="", description="SHA-256 do manifest")
    encrypted: bool = Field(default=False)
    status: BackupStatus = Field(default=BackupStatus.IN_PROGRESS)
    error: Optional[str] = Field(default=None)
    since: Optional[datetime] = Field(
        default=None, description="Timestamp de referência do incremental"
    )
    secondary_copied: bool = Field(
        default=False, description="Se artefatos foram copiados para o secundário"
    )

    @classmethod
    def start(cls, backup_type: BackupType, encrypted: bool = False, **kwargs) -> "BackupMetadata":
        """Cria registro in_progress para uma nova execução."""
        timestamp = datetime.now(timezone.utc)
        return cls(
            id=generate_backup_id(backup_type, timestamp),
            type=backup_type,
            timestamp=timestamp,
            encrypted=encrypted,
            **kwargs,
        )

    @property
    def is_completed(self) -> bool:
        return self.status == BackupStatus.COMPLETED

    def _ensure_in_progress(self, target: BackupStatus) -> None:
        if self.status != BackupStatus.IN_PROGRESS:
            raise InvalidStatusTransitionError(
                f"Backup {self.id}: transição {self.status.value} -> {target.value} não permitida"
            )

    def mark_completed(self, size: int, checksum: str) -> None:
        """Finaliza execução com sucesso."""
        self._ensure_in_progress(BackupStatus.COMPLETED)
        self.size = size
        self.checksum = checksum
        self.status = BackupStatus.COMPLETED

    def mark_failed(self, error: str) -> None:
        """Finaliza execução com falha, preservando mensagem de erro."""
        self._ensure_in_progress(BackupStatus.FAILED)
        self.error = error
        self.status = BackupStatus.FAILED


class RestoreOptions(BaseModel):
    """Opções de restore."""

    backup_id: str
    target_database: Optional[str] = Field(
        default=None, description="Database de destino (default: database original)"
    )
    collections: Optional[List[str]] = Field(
        default=None,
        description="Subset a restaurar (<database>.<collection> ou apenas <collection>)",
    )
    point_in_time: Optional[datetime] = Field(
        default=None, description="Hint informativo, apenas registrado em log"
    )
    validate_only: bool = Field(default=False)


class RestoreReport(BaseModel):
    """Resultado agregado de um restore."""

    backup_id: str
    validate_only: bool = False
    target_database: Optional[str] = None
    collections_restored: List[str] = Field(default_factory=list)
    documents_restored: int = 0
    documents_failed: int = 0


class Contact(BaseModel):
    """Contato notificado quando o disaster recovery é iniciado."""

    name: str
    role: str
    email: str
    phone: str


def _minutes_to_timedelta(data: Any, mapping: Dict[str, str]) -> Any:
    # Aceita campos em minutos (ex: rto_minutes) no JSON do plano
    if isinstance(data, dict):
        data = dict(data)
        for minutes_key, field_name in mapping.items():
            if minutes_key in data and field_name not in data:
                data[field_name] = timedelta(minutes=data.pop(minutes_key))
    return data


class RecoveryStep(BaseModel):
    """Passo individual do plano de disaster recovery."""

    id: str
    description: str
    automated: bool = False
    estimated_time: timedelta = Field(default=timedelta(0))
    dependencies: List[str] = Field(
        default_factory=list,
        description="Dependências declaradas (informativas, não alteram a ordem)",
    )
    script: Optional[str] = Field(default=None, description="Comando executável")

    @model_validator(mode="before")
    @classmethod
    def accept_minutes(cls, data: Any) -> Any:
        return _minutes_to_timedelta(data, {"estimated_minutes": "estimated_time"})


class DisasterRecoveryPlan(BaseModel):
    """
    Plano de disaster recovery.

    Os passos são executados na ordem literal da lista. O campo
    dependencies de cada passo é apenas metadado.
    """

    rto: timedelta = Field(description="Recovery Time Objective")
    rpo: timedelta = Field(description="Recovery Point Objective")
    critical_components: List[str] = Field(default_factory=list)
    recovery_steps: List[RecoveryStep] = Field(default_factory=list)
    contact_list: List[Contact] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_minutes(cls, data: Any) -> Any:
        return _minutes_to_timedelta(data, {"rto_minutes": "rto", "rpo_minutes": "rpo"})

    @classmethod
    def from_file(cls, file_path: str) -> "DisasterRecoveryPlan":
        """Carrega plano de arquivo JSON."""
        with open(file_path, "r") as f:
            return cls.model_validate_json(f.read())

    def validate_steps(self) -> List[str]:
        """
        Valida passos do plano.

        Returns:
            Lista de avisos sobre dependências (desconhecidas ou declaradas
            depois do passo dependente)

        Raises:
            PlanValidationError: Se existirem ids de passo duplicados
        """
        seen: List[str] = []
        all_ids = [step.id for step in self.recovery_steps]
        duplicates = sorted({step_id for step_id in all_ids if all_ids.count(step_id) > 1})
        if duplicates:
            raise PlanValidationError(f"Ids de passo duplicados: {', '.join(duplicates)}")

        warnings: List[str] = []
        for step in self.recovery_steps:
            for dependency in step.dependencies:
                if dependency not in all_ids:
                    warnings.append(f"{step.id}: dependência desconhecida '{dependency}'")
                elif dependency not in seen:
                    warnings.append(
                        f"{step.id}: dependência '{dependency}' aparece depois na ordem do plano"
                    )
            seen.append(step.id)
        return warnings


class StepOutcome(str, Enum):
    """Resultado de um passo de recovery."""

    SCRIPT_EXECUTED = "script_executed"
    HANDLER_EXECUTED = "handler_executed"
    MANUAL = "manual"


class StepResult(BaseModel):
    step_id: str
    outcome: StepOutcome
    duration_seconds: float = 0.0
    stdout: str = ""
    stderr: str = ""


class DisasterRecoveryReport(BaseModel):
    """Resultado da execução do plano de disaster recovery."""

    started_at: datetime
    completed_at: Optional[datetime] = None
    contacts_notified: int = 0
    steps: List[StepResult] = Field(default_factory=list)
    manual_steps: List[str] = Field(default_factory=list)
    health: Dict[str, Any] = Field(default_factory=dict)
    rto_exceeded: bool = False


class StorageUsage(BaseModel):
    primary: int = 0
    secondary: Optional[int] = None


class BackupMetricsSummary(BaseModel):
    """Métricas derivadas do catálogo de backups."""

    total_backups: int = 0
    total_size: int = 0
    last_full_backup: Optional[datetime] = None
    last_incremental_backup: Optional[datetime] = None
    success_rate: float = Field(default=0.0, description="completed / total, entre 0 e 1")
    storage_usage: StorageUsage = Field(default_factory=StorageUsage)

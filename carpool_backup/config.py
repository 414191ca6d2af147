"""
Configuração do backup e disaster recovery usando Pydantic.

Carregada uma vez no startup (variáveis de ambiente com prefixo BACKUP_ e
delimitador aninhado "__", ex: BACKUP_STORAGE__PRIMARY) e compartilhada
somente-leitura entre os componentes.
"""

from typing import Literal, Optional

import structlog
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)


class ScheduleConfig(BaseModel):
    """Cadência dos backups agendados."""

    # Expressões cron são apenas documentação; o scheduler usa os intervalos
    full: str = Field(default="0 2 * * *", description="Cron do backup full (diário 2h UTC)")
    incremental: str = Field(default="0 */4 * * *", description="Cron do backup incremental")
    full_interval_seconds: int = Field(default=24 * 60 * 60, description="Intervalo do backup full")
    incremental_interval_seconds: int = Field(
        default=4 * 60 * 60, description="Intervalo do backup incremental"
    )
    cleanup_interval_seconds: int = Field(
        default=24 * 60 * 60, description="Intervalo da limpeza de retenção"
    )

    @field_validator("full", "incremental")
    @classmethod
    def validate_cron(cls, v):
        """Valida formato cron (5 campos)."""
        if len(v.split()) != 5:
            raise ValueError(f"Expressão cron inválida (esperado 5 campos): {v}")
        return v

    @field_validator(
        "full_interval_seconds", "incremental_interval_seconds", "cleanup_interval_seconds"
    )
    @classmethod
    def validate_interval(cls, v):
        """Valida que intervalos são positivos."""
        if v <= 0:
            raise ValueError("Intervalos de agendamento devem ser maiores que 0")
        return v


class RetentionConfig(BaseModel):
    """Janelas de retenção, cada uma em número de períodos."""

    daily: int = Field(default=7, ge=1, description="Dias de retenção de backups diários")
    weekly: int = Field(default=4, ge=1, description="Semanas de retenção de backups semanais")
    monthly: int = Field(default=6, ge=1, description="Meses de retenção de backups mensais")


class StorageConfig(BaseModel):
    """Locais de armazenamento dos artefatos."""

    primary: str = Field(default="/data/backups", description="Diretório primário de backups")
    secondary: Optional[str] = Field(
        default=None,
        description="Local secundário para redundância (path local ou s3://bucket/prefix)",
    )
    s3_region: str = Field(default="us-west-2", description="Região AWS para secundário S3")


class EncryptionConfig(BaseModel):
    """Configuração de criptografia (flag e identificador opaco de chave)."""

    enabled: bool = Field(default=False, description="Criptografar artefatos de backup")
    key_id: Optional[str] = Field(default=None, description="Identificador opaco da chave")


class BackupConfiguration(BaseSettings):
    """Configuração completa do backup e disaster recovery."""

    model_config = SettingsConfigDict(
        env_prefix="BACKUP_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    encryption: EncryptionConfig = Field(default_factory=EncryptionConfig)

    # Document store
    mongodb_uri: str = Field(default="mongodb://localhost:27017")
    modified_field: str = Field(
        default="_ts", description="Campo com epoch (segundos) da última modificação"
    )
    document_id_field: str = Field(default="_id", description="Identidade usada no upsert")

    # Restore
    restore_batch_size: int = Field(default=100, description="Documentos por batch no restore")

    # Disaster recovery
    dr_plan_path: Optional[str] = Field(default=None, description="Plano de DR em JSON")
    script_timeout_seconds: int = Field(default=600, description="Timeout de scripts de recovery")

    # Catálogo
    catalog_path: Optional[str] = Field(
        default=None,
        description="Arquivo JSON do catálogo (default: <storage.primary>/catalog.json)",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")

    @field_validator("restore_batch_size")
    @classmethod
    def validate_batch_size(cls, v):
        """Valida que batch de restore está em range válido."""
        if not 1 <= v <= 10000:
            raise ValueError("restore_batch_size deve estar entre 1 e 10000")
        return v

    @field_validator("script_timeout_seconds")
    @classmethod
    def validate_script_timeout(cls, v):
        """Valida que timeout de scripts é positivo."""
        if v <= 0:
            raise ValueError("script_timeout_seconds deve ser maior que 0")
        return v

    @field_validator("encryption")
    @classmethod
    def warn_missing_key_id(cls, v):
        """Avisa quando criptografia está habilitada sem key_id."""
        if v.enabled and not v.key_id:
            logger.warning("Criptografia habilitada sem key_id configurado")
        return v

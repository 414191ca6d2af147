"""
Hierarquia de exceções do backup e disaster recovery.

Erros de store abortam a execução corrente, erros de integridade nunca
alteram dados e erros de orquestração são fatais para a recuperação.
"""


class BackupError(Exception):
    """Exceção base para erros de backup e recovery."""

    pass


class DocumentStoreError(BackupError):
    """Levantada quando o document store falha em enumerar, ler ou escrever."""

    pass


class BackupNotFoundError(BackupError):
    """Levantada quando o backup solicitado não existe no catálogo."""

    def __init__(self, backup_id: str):
        self.backup_id = backup_id
        super().__init__(f"Backup {backup_id} not found")


class BackupNotRestorableError(BackupError):
    """Levantada ao tentar restaurar um backup que não está completed."""

    pass


class BackupIntegrityError(BackupError):
    """Levantada quando o checksum de um artefato não confere com o registrado."""

    def __init__(self, backup_id: str, message: str):
        self.backup_id = backup_id
        super().__init__(f"Backup validation failed for {backup_id}: {message}")


class CollectionNotInBackupError(BackupError):
    """Levantada quando o restore pede uma collection ausente do backup."""

    pass


class BackupInProgressError(BackupError):
    """Levantada quando já existe uma execução do mesmo tipo em andamento."""

    pass


class InvalidStatusTransitionError(BackupError):
    """Levantada em transições de status fora de in_progress -> completed/failed."""

    pass


class SecondaryStorageError(BackupError):
    """Levantada quando a cópia para o storage secundário falha."""

    pass


class DisasterRecoveryError(BackupError):
    """Exceção base para falhas na execução do plano de disaster recovery."""

    pass


class RecoveryScriptError(DisasterRecoveryError):
    """Levantada quando um script de recovery termina com exit code != 0."""

    def __init__(self, script: str, exit_code: int, stderr: str = ""):
        self.script = script
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Recovery script failed with exit code {exit_code}: {script}"
        )


class SystemHealthCheckError(DisasterRecoveryError):
    """Levantada quando a verificação de saúde pós-recovery falha."""

    pass


class PlanValidationError(ValueError):
    """Levantada quando o plano de disaster recovery é inválido."""

    pass

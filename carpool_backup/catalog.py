"""
BackupCatalog: repositório de registros BackupMetadata.

Implementações:
- InMemoryBackupCatalog: registros em memória (tempo de vida do processo)
- JsonFileBackupCatalog: persiste registros em arquivo JSON a cada escrita

Todo acesso é serializado por um threading.RLock, já que scheduler, CLI e
disaster recovery podem compartilhar o mesmo catálogo.
"""

import json
import os
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import structlog

from .exceptions import BackupNotFoundError
from .models import (
    BackupMetadata,
    BackupMetricsSummary,
    BackupStatus,
    BackupType,
    StorageUsage,
)

logger = structlog.get_logger(__name__)


class BackupCatalog(ABC):
    """Interface do catálogo de backups."""

    @abstractmethod
    def add(self, metadata: BackupMetadata) -> None:
        pass

    @abstractmethod
    def update(self, metadata: BackupMetadata) -> None:
        pass

    @abstractmethod
    def get(self, backup_id: str) -> Optional[BackupMetadata]:
        pass

    @abstractmethod
    def remove(self, backup_id: str) -> None:
        pass

    @abstractmethod
    def list(
        self,
        status: Optional[BackupStatus] = None,
        backup_type: Optional[BackupType] = None,
    ) -> List[BackupMetadata]:
        """
        Lista registros do mais antigo para o mais recente.

        Args:
            status: Filtro opcional por status
            backup_type: Filtro opcional por tipo
        """
        pass

    def last_completed(self, backup_type: Optional[BackupType] = None) -> Optional[BackupMetadata]:
        """Registro completed mais recente (de qualquer tipo, se não informado)."""
        completed = self.list(status=BackupStatus.COMPLETED, backup_type=backup_type)
        return completed[-1] if completed else None

    def get_metrics(self) -> BackupMetricsSummary:
        """
        Calcula métricas a partir dos registros.

        Uso do storage secundário não é conhecido pelo catálogo e fica None.

        Returns:
            BackupMetricsSummary com success_rate = completed / total
        """
        records = self.list()
        completed = [r for r in records if r.status == BackupStatus.COMPLETED]

        last_full = self.last_completed(BackupType.FULL)
        last_incremental = self.last_completed(BackupType.INCREMENTAL)

        total_size = sum(r.size for r in completed)

        return BackupMetricsSummary(
            total_backups=len(records),
            total_size=total_size,
            last_full_backup=last_full.timestamp if last_full else None,
            last_incremental_backup=last_incremental.timestamp if last_incremental else None,
            success_rate=len(completed) / len(records) if records else 0.0,
            storage_usage=StorageUsage(primary=total_size),
        )


class InMemoryBackupCatalog(BackupCatalog):
    """Catálogo em memória."""

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, BackupMetadata] = {}

    def add(self, metadata: BackupMetadata) -> None:
        with self._lock:
            if metadata.id in self._records:
                raise ValueError(f"Backup {metadata.id} já registrado no catálogo")
            self._records[metadata.id] = metadata.model_copy(deep=True)
            self._persist()

    def update(self, metadata: BackupMetadata) -> None:
        with self._lock:
            if metadata.id not in self._records:
                raise BackupNotFoundError(metadata.id)
            self._records[metadata.id] = metadata.model_copy(deep=True)
            self._persist()

    def get(self, backup_id: str) -> Optional[BackupMetadata]:
        with self._lock:
            record = self._records.get(backup_id)
            return record.model_copy(deep=True) if record else None

    def remove(self, backup_id: str) -> None:
        with self._lock:
            if self._records.pop(backup_id, None) is not None:
                self._persist()

    def list(
        self,
        status: Optional[BackupStatus] = None,
        backup_type: Optional[BackupType] = None,
    ) -> List[BackupMetadata]:
        with self._lock:
            records = [
                r.model_copy(deep=True)
                for r in self._records.values()
                if (status is None or r.status == status)
                and (backup_type is None or r.type == backup_type)
            ]
        records.sort(key=lambda r: r.timestamp)
        return records

    def _persist(self) -> None:
        """Hook chamado após cada escrita (com lock adquirido)."""
        pass


class JsonFileBackupCatalog(InMemoryBackupCatalog):
    """
    Catálogo persistido em arquivo JSON.

    O arquivo é carregado no construtor e reescrito (via arquivo temporário +
    os.replace) a cada add/update/remove.
    """

    def __init__(self, file_path: str):
        super().__init__()
        self.file_path = file_path
        self._load()

        logger.info(
            "JsonFileBackupCatalog inicializado",
            file_path=file_path,
            records=len(self._records),
        )

    def _load(self) -> None:
        if not os.path.exists(self.file_path):
            return

        with open(self.file_path, "r") as f:
            data = json.load(f)

        for item in data.get("backups", []):
            record = BackupMetadata.model_validate(item)
            self._records[record.id] = record

    def _persist(self) -> None:
        os.makedirs(os.path.dirname(self.file_path) or ".", exist_ok=True)

        payload = {
            "backups": [r.model_dump(mode="json") for r in self._records.values()]
        }
        tmp_path = f"{self.file_path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.file_path)

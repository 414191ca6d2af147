"""
Criptografia de artefatos de backup.

Apenas o ponto de extensão: a configuração carrega um flag e um
identificador opaco de chave. Gestão de chaves fica fora deste pacote.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import structlog

logger = structlog.get_logger(__name__)


class ArtifactEncryptor(ABC):
    """Criptografa/descriptografa arquivos de backup no lugar."""

    def __init__(self, key_id: Optional[str] = None):
        self.key_id = key_id

    @abstractmethod
    def encrypt(self, backup_id: str, paths: List[str]) -> None:
        pass

    @abstractmethod
    def decrypt(self, backup_id: str, paths: List[str]) -> None:
        pass


class NoopArtifactEncryptor(ArtifactEncryptor):
    """Não altera os arquivos; registra a operação em log."""

    def encrypt(self, backup_id: str, paths: List[str]) -> None:
        logger.info(
            "Criptografando backup",
            backup_id=backup_id,
            key_id=self.key_id,
            file_count=len(paths),
        )

    def decrypt(self, backup_id: str, paths: List[str]) -> None:
        logger.info(
            "Descriptografando backup",
            backup_id=backup_id,
            key_id=self.key_id,
            file_count=len(paths),
        )

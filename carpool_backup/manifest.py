"""
BackupManifest: Schema Pydantic do manifest de um backup.

Salvo como <primary>/<backup_id>.json. O tamanho e o SHA-256 deste arquivo são
os valores registrados em BackupMetadata; cada collection listada carrega seu
próprio checksum.
"""

import hashlib
import os
from datetime import datetime
from typing import Dict

import structlog
from pydantic import BaseModel, Field

from .models import BackupType

logger = structlog.get_logger(__name__)


def calculate_file_checksum(file_path: str) -> str:
    """Calcula SHA-256 checksum de arquivo."""
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


class CollectionArtifact(BaseModel):
    """Metadados do arquivo de uma collection no backup."""

    database_id: str
    collection_id: str
    path: str = Field(description="Path relativo ao diretório primário")
    document_count: int = Field(default=0)
    size_bytes: int = Field(default=0)
    checksum: str = Field(description="SHA-256 do arquivo da collection")


class BackupManifest(BaseModel):
    """
    Manifest de backup.

    Estrutura:
    - backup_id: Identificador do backup
    - backup_type: full ou incremental
    - backup_timestamp: Início da execução
    - collections: <database>.<collection> -> CollectionArtifact
    - total_documents / total_size_bytes: agregados das collections
    """

    backup_id: str
    backup_type: BackupType
    backup_timestamp: datetime
    backup_version: str = Field(default="1.0.0", description="Versão do schema de manifest")
    collections: Dict[str, CollectionArtifact] = Field(default_factory=dict)
    created_by: str = Field(default="carpool-backup")

    @property
    def total_documents(self) -> int:
        return sum(c.document_count for c in self.collections.values())

    @property
    def total_size_bytes(self) -> int:
        return sum(c.size_bytes for c in self.collections.values())

    def add_collection(self, artifact: CollectionArtifact) -> None:
        key = f"{artifact.database_id}.{artifact.collection_id}"
        self.collections[key] = artifact

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_file(cls, file_path: str) -> "BackupManifest":
        with open(file_path, "r") as f:
            return cls.model_validate_json(f.read())

    def save_to_file(self, file_path: str) -> None:
        """
        Salva manifest em arquivo JSON.

        Args:
            file_path: Caminho de destino
        """
        os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)

        with open(file_path, "w") as f:
            f.write(self.to_json())

        logger.info("Manifest salvo", file_path=file_path, backup_id=self.backup_id)

    def find_invalid_collections(self, base_dir: str) -> Dict[str, str]:
        """
        Recalcula checksums de todas as collections.

        Args:
            base_dir: Diretório primário de backups

        Returns:
            Dict <database>.<collection> -> motivo, vazio se tudo válido
        """
        invalid: Dict[str, str] = {}

        for key, artifact in self.collections.items():
            full_path = os.path.join(base_dir, artifact.path)

            if not os.path.exists(full_path):
                logger.error("Arquivo de collection não encontrado", collection=key, path=full_path)
                invalid[key] = "missing"
                continue

            calculated = calculate_file_checksum(full_path)
            if calculated != artifact.checksum:
                logger.error(
                    "Checksum inválido",
                    collection=key,
                    expected=artifact.checksum,
                    calculated=calculated,
                )
                invalid[key] = "checksum_mismatch"

        return invalid

"""
ArtifactStore: layout dos artefatos de backup no storage primário.

Layout:
- <primary>/<backup_id>/<database_id>/<collection_id>.json  (array de documentos)
- <primary>/<backup_id>.json                                (manifest)

Documentos são serializados em MongoDB Extended JSON (bson.json_util) para
preservar ObjectId, datetime e demais tipos BSON no restore.
"""

import os
import shutil
from typing import Any, Dict, List, Tuple

import structlog
from bson import json_util

from .manifest import BackupManifest, CollectionArtifact, calculate_file_checksum

logger = structlog.get_logger(__name__)


class ArtifactStore:
    """Leitura e escrita de artefatos no diretório primário."""

    def __init__(self, base_path: str):
        self.base_path = base_path
        os.makedirs(base_path, exist_ok=True)

    def backup_dir(self, backup_id: str) -> str:
        return os.path.join(self.base_path, backup_id)

    def manifest_path(self, backup_id: str) -> str:
        return os.path.join(self.base_path, f"{backup_id}.json")

    def collection_relpath(self, backup_id: str, database_id: str, collection_id: str) -> str:
        return os.path.join(backup_id, database_id, f"{collection_id}.json")

    def collection_path(self, backup_id: str, database_id: str, collection_id: str) -> str:
        return os.path.join(
            self.base_path, self.collection_relpath(backup_id, database_id, collection_id)
        )

    def write_collection(
        self,
        backup_id: str,
        database_id: str,
        collection_id: str,
        documents: List[Dict[str, Any]],
    ) -> CollectionArtifact:
        """
        Serializa documentos de uma collection.

        Returns:
            CollectionArtifact com contagem, tamanho e checksum do arquivo
        """
        relpath = self.collection_relpath(backup_id, database_id, collection_id)
        full_path = os.path.join(self.base_path, relpath)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)

        with open(full_path, "w") as f:
            f.write(json_util.dumps(documents, indent=2))

        artifact = CollectionArtifact(
            database_id=database_id,
            collection_id=collection_id,
            path=relpath,
            document_count=len(documents),
            size_bytes=os.path.getsize(full_path),
            checksum=calculate_file_checksum(full_path),
        )

        logger.debug(
            "Collection serializada",
            backup_id=backup_id,
            collection=f"{database_id}.{collection_id}",
            document_count=artifact.document_count,
            size_bytes=artifact.size_bytes,
        )

        return artifact

    def read_collection(
        self, backup_id: str, database_id: str, collection_id: str
    ) -> List[Dict[str, Any]]:
        full_path = self.collection_path(backup_id, database_id, collection_id)
        with open(full_path, "r") as f:
            return json_util.loads(f.read())

    def write_manifest(self, manifest: BackupManifest) -> Tuple[int, str]:
        """
        Grava manifest e retorna (tamanho, checksum) do arquivo.
        """
        path = self.manifest_path(manifest.backup_id)
        manifest.save_to_file(path)
        return os.path.getsize(path), calculate_file_checksum(path)

    def read_manifest(self, backup_id: str) -> BackupManifest:
        return BackupManifest.from_file(self.manifest_path(backup_id))

    def manifest_checksum(self, backup_id: str) -> str:
        return calculate_file_checksum(self.manifest_path(backup_id))

    def artifact_files(self, backup_id: str) -> List[str]:
        """Paths relativos de todos os arquivos do backup (manifest incluído)."""
        files: List[str] = []
        if os.path.exists(self.manifest_path(backup_id)):
            files.append(f"{backup_id}.json")

        backup_dir = self.backup_dir(backup_id)
        if os.path.isdir(backup_dir):
            for root, _dirs, names in os.walk(backup_dir):
                for name in sorted(names):
                    files.append(
                        os.path.relpath(os.path.join(root, name), self.base_path)
                    )
        return files

    def artifact_paths(self, backup_id: str) -> List[str]:
        return [os.path.join(self.base_path, relpath) for relpath in self.artifact_files(backup_id)]

    def delete_backup(self, backup_id: str) -> None:
        """
        Remove manifest e diretório do backup. Arquivos ausentes são ignorados;
        demais OSError propagam.
        """
        manifest_path = self.manifest_path(backup_id)
        if os.path.exists(manifest_path):
            os.remove(manifest_path)

        backup_dir = self.backup_dir(backup_id)
        if os.path.isdir(backup_dir):
            shutil.rmtree(backup_dir)

        logger.info("Artefatos de backup removidos", backup_id=backup_id)

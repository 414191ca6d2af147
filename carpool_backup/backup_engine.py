"""
BackupEngine: executa backups full e incrementais do document store.

Fluxo de uma execução:
1. Registrar BackupMetadata in_progress no catálogo
2. Enumerar databases e collections (sequencialmente)
3. Serializar documentos de cada collection
4. Gerar manifest com checksums por collection
5. Calcular tamanho e SHA-256 do manifest
6. Criptografar (se habilitado) e copiar para storage secundário (se configurado)
7. Marcar completed (ou failed, re-levantando o erro)
"""

import threading
import time
from datetime import datetime, timezone
from typing import Optional, Set

import structlog

from .artifact_store import ArtifactStore
from .catalog import BackupCatalog
from .config import BackupConfiguration
from .document_store import DocumentStore
from .encryption import ArtifactEncryptor, NoopArtifactEncryptor
from .exceptions import BackupInProgressError, SecondaryStorageError
from .manifest import BackupManifest
from .metrics import BackupMetrics
from .models import BackupMetadata, BackupType
from .storage_client import StorageClient

logger = structlog.get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class BackupEngine:
    """Executa uma execução de backup e registra o resultado no catálogo."""

    def __init__(
        self,
        config: BackupConfiguration,
        document_store: DocumentStore,
        catalog: BackupCatalog,
        artifact_store: ArtifactStore,
        encryptor: Optional[ArtifactEncryptor] = None,
        secondary: Optional[StorageClient] = None,
        metrics: Optional[BackupMetrics] = None,
    ):
        """
        Inicializa BackupEngine.

        Args:
            config: Configuração de backup
            document_store: Store de origem dos documentos
            catalog: Catálogo onde as execuções são registradas
            artifact_store: Layout de artefatos no storage primário
            encryptor: Criptografia aplicada se encryption.enabled
            secondary: Cliente do storage secundário (opcional)
            metrics: Métricas Prometheus (opcional)
        """
        self.config = config
        self.document_store = document_store
        self.catalog = catalog
        self.artifact_store = artifact_store
        self.encryptor = encryptor or NoopArtifactEncryptor(config.encryption.key_id)
        self.secondary = secondary
        self.metrics = metrics

        self._active: Set[BackupType] = set()
        self._active_lock = threading.Lock()

    def perform_full_backup(self) -> BackupMetadata:
        """Backup de todos os documentos de todas as collections."""
        return self._run(BackupType.FULL)

    def perform_incremental_backup(self, since: Optional[datetime] = None) -> BackupMetadata:
        """
        Backup apenas de documentos modificados após `since`.

        Args:
            since: Referência; default é o timestamp do último backup completed
                (de qualquer tipo) ou o epoch se não houver nenhum
        """
        if since is None:
            last = self.catalog.last_completed()
            since = last.timestamp if last else EPOCH

        return self._run(BackupType.INCREMENTAL, since=since)

    def _acquire(self, backup_type: BackupType) -> None:
        with self._active_lock:
            if backup_type in self._active:
                raise BackupInProgressError(
                    f"Backup {backup_type.value} já em andamento"
                )
            self._active.add(backup_type)

    def _release(self, backup_type: BackupType) -> None:
        with self._active_lock:
            self._active.discard(backup_type)

    def _run(self, backup_type: BackupType, since: Optional[datetime] = None) -> BackupMetadata:
        self._acquire(backup_type)
        try:
            return self._execute(backup_type, since)
        finally:
            self._release(backup_type)

    def _execute(self, backup_type: BackupType, since: Optional[datetime]) -> BackupMetadata:
        start_time = time.time()

        metadata = BackupMetadata.start(
            backup_type, encrypted=self.config.encryption.enabled, since=since
        )
        self.catalog.add(metadata)

        logger.info(
            "Iniciando backup",
            backup_id=metadata.id,
            backup_type=backup_type.value,
            since=since.isoformat() if since else None,
        )

        try:
            manifest = BackupManifest(
                backup_id=metadata.id,
                backup_type=backup_type,
                backup_timestamp=metadata.timestamp,
            )

            for database_id in self.document_store.list_databases():
                for collection_id in self.document_store.list_collections(database_id):
                    documents = self.document_store.read_documents(
                        database_id, collection_id, modified_after=since
                    )

                    # Incremental ignora collections sem alterações
                    if backup_type == BackupType.INCREMENTAL and not documents:
                        continue

                    artifact = self.artifact_store.write_collection(
                        metadata.id, database_id, collection_id, documents
                    )
                    manifest.add_collection(artifact)

            metadata.collections = list(manifest.collections.keys())

            if backup_type == BackupType.INCREMENTAL and not manifest.collections:
                logger.info("Nenhuma alteração desde o último backup", backup_id=metadata.id)
                size, checksum = 0, ""
            else:
                size, checksum = self.artifact_store.write_manifest(manifest)

                if metadata.encrypted:
                    self.encryptor.encrypt(metadata.id, self.artifact_store.artifact_paths(metadata.id))

                if self.secondary is not None:
                    self._copy_to_secondary(metadata.id)
                    metadata.secondary_copied = True

            metadata.mark_completed(size, checksum)
            self.catalog.update(metadata)

            duration = time.time() - start_time
            if self.metrics:
                self.metrics.observe_backup(
                    backup_type.value,
                    metadata.status.value,
                    duration,
                    size_bytes=size,
                    completed_at=time.time(),
                )

            logger.info(
                "Backup concluído com sucesso",
                backup_id=metadata.id,
                backup_type=backup_type.value,
                collections=len(metadata.collections),
                documents=manifest.total_documents,
                size_bytes=size,
                checksum=checksum[:16] + "..." if checksum else "",
                duration_seconds=round(duration, 2),
            )

            return metadata

        except Exception as e:
            duration = time.time() - start_time

            logger.error(
                "Erro no backup",
                backup_id=metadata.id,
                backup_type=backup_type.value,
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )

            metadata.mark_failed(str(e))
            self.catalog.update(metadata)

            if self.metrics:
                self.metrics.observe_backup(backup_type.value, metadata.status.value, duration)

            raise

    def _copy_to_secondary(self, backup_id: str) -> None:
        files = self.artifact_store.artifact_files(backup_id)

        if not self.secondary.upload_files(self.artifact_store.base_path, files):
            raise SecondaryStorageError(
                f"Falha ao copiar backup {backup_id} para storage secundário"
            )

        logger.info(
            "Backup copiado para storage secundário",
            backup_id=backup_id,
            file_count=len(files),
        )

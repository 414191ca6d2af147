"""
RestoreEngine: restaura backups no document store via upsert.

O restore é idempotente: documentos são inseridos ou substituídos pela
identidade, nunca apagados. Com validate_only apenas os checksums são
verificados e o document store não é acessado.
"""

import os
from typing import Dict, List, Optional, Tuple

import structlog

from .artifact_store import ArtifactStore
from .catalog import BackupCatalog
from .config import BackupConfiguration
from .document_store import DocumentStore
from .encryption import ArtifactEncryptor, NoopArtifactEncryptor
from .exceptions import (
    BackupIntegrityError,
    BackupNotFoundError,
    BackupNotRestorableError,
    CollectionNotInBackupError,
    DocumentStoreError,
)
from .metrics import BackupMetrics
from .models import BackupMetadata, RestoreOptions, RestoreReport

logger = structlog.get_logger(__name__)


class RestoreEngine:
    """Restaura (ou valida) um backup registrado no catálogo."""

    def __init__(
        self,
        config: BackupConfiguration,
        document_store: DocumentStore,
        catalog: BackupCatalog,
        artifact_store: ArtifactStore,
        encryptor: Optional[ArtifactEncryptor] = None,
        metrics: Optional[BackupMetrics] = None,
    ):
        self.config = config
        self.document_store = document_store
        self.catalog = catalog
        self.artifact_store = artifact_store
        self.encryptor = encryptor or NoopArtifactEncryptor(config.encryption.key_id)
        self.metrics = metrics

    def restore_from_backup(self, options: RestoreOptions) -> RestoreReport:
        """
        Restaura backup conforme opções.

        Args:
            options: RestoreOptions (backup_id, target_database, collections,
                point_in_time, validate_only)

        Returns:
            RestoreReport com contagem de documentos restaurados e falhos

        Raises:
            BackupNotFoundError: backup_id ausente do catálogo
            BackupNotRestorableError: backup não está completed
            BackupIntegrityError: checksum divergente (validate_only)
            CollectionNotInBackupError: collection pedida não está no backup
        """
        metadata = self.catalog.get(options.backup_id)
        if metadata is None:
            raise BackupNotFoundError(options.backup_id)

        if not metadata.is_completed:
            raise BackupNotRestorableError(
                f"Backup {metadata.id} não pode ser restaurado (status={metadata.status.value})"
            )

        logger.info(
            "Iniciando restore de backup",
            backup_id=metadata.id,
            target_database=options.target_database,
            validate_only=options.validate_only,
            point_in_time=options.point_in_time.isoformat() if options.point_in_time else None,
        )

        # Artefatos são descriptografados no lugar e voltam a ser
        # criptografados ao final, mesmo em caso de erro
        if not (metadata.encrypted and metadata.collections):
            return self._restore(metadata, options)

        paths = self.artifact_store.artifact_paths(metadata.id)
        self.encryptor.decrypt(metadata.id, paths)
        try:
            return self._restore(metadata, options)
        finally:
            self.encryptor.encrypt(metadata.id, paths)

    def _restore(self, metadata: BackupMetadata, options: RestoreOptions) -> RestoreReport:
        if options.validate_only:
            self.validate_backup(metadata)
            return RestoreReport(
                backup_id=metadata.id,
                validate_only=True,
                target_database=options.target_database,
            )

        restore_set = self._resolve_collections(metadata, options.collections)

        report = RestoreReport(backup_id=metadata.id, target_database=options.target_database)

        for database_id, collection_id in restore_set:
            restored, failed = self._restore_collection(
                metadata.id,
                database_id,
                collection_id,
                options.target_database or database_id,
            )
            report.collections_restored.append(f"{database_id}.{collection_id}")
            report.documents_restored += restored
            report.documents_failed += failed

        if self.metrics:
            self.metrics.observe_restore(report.documents_restored, report.documents_failed)

        if report.documents_failed:
            logger.error(
                "Restore concluído com falhas",
                backup_id=metadata.id,
                documents_restored=report.documents_restored,
                documents_failed=report.documents_failed,
            )
        else:
            logger.info(
                "Restore concluído com sucesso",
                backup_id=metadata.id,
                collections=len(report.collections_restored),
                documents_restored=report.documents_restored,
            )

        return report

    def validate_backup(self, metadata: BackupMetadata) -> None:
        """
        Valida checksum do manifest e de cada collection listada.

        Raises:
            BackupIntegrityError: Se algum artefato estiver ausente ou divergente
        """
        # Incremental sem alterações não possui manifest
        if not metadata.collections and not metadata.checksum:
            logger.info("Backup sem artefatos, nada a validar", backup_id=metadata.id)
            return

        manifest_path = self.artifact_store.manifest_path(metadata.id)
        if not os.path.exists(manifest_path):
            raise BackupIntegrityError(metadata.id, "manifest not found")

        calculated = self.artifact_store.manifest_checksum(metadata.id)
        if calculated != metadata.checksum:
            logger.error(
                "Checksum do manifest inválido",
                backup_id=metadata.id,
                expected=metadata.checksum,
                calculated=calculated,
            )
            raise BackupIntegrityError(metadata.id, "checksum mismatch")

        manifest = self.artifact_store.read_manifest(metadata.id)
        invalid = manifest.find_invalid_collections(self.artifact_store.base_path)
        if invalid:
            details = ", ".join(f"{key}: {reason}" for key, reason in sorted(invalid.items()))
            raise BackupIntegrityError(metadata.id, details)

        logger.info("Backup validado com sucesso", backup_id=metadata.id)

    def _resolve_collections(
        self, metadata: BackupMetadata, requested: Optional[List[str]]
    ) -> List[Tuple[str, str]]:
        available: Dict[str, Tuple[str, str]] = {}
        for key in metadata.collections:
            database_id, _, collection_id = key.partition(".")
            available[key] = (database_id, collection_id)

        if requested is None:
            return list(available.values())

        resolved: List[Tuple[str, str]] = []
        for entry in requested:
            if entry in available:
                matches = [available[entry]]
            else:
                matches = [pair for pair in available.values() if pair[1] == entry]

            if not matches:
                raise CollectionNotInBackupError(
                    f"Collection {entry} não está no backup {metadata.id}"
                )

            for pair in matches:
                if pair not in resolved:
                    resolved.append(pair)

        return resolved

    def _restore_collection(
        self,
        backup_id: str,
        database_id: str,
        collection_id: str,
        target_database: str,
    ) -> Tuple[int, int]:
        documents = self.artifact_store.read_collection(backup_id, database_id, collection_id)
        batch_size = self.config.restore_batch_size

        restored = 0
        failed = 0

        for offset in range(0, len(documents), batch_size):
            for document in documents[offset:offset + batch_size]:
                try:
                    self.document_store.upsert_document(target_database, collection_id, document)
                    restored += 1
                except DocumentStoreError as e:
                    failed += 1
                    logger.error(
                        "Erro ao restaurar documento",
                        backup_id=backup_id,
                        collection=f"{target_database}.{collection_id}",
                        document_id=str(document.get(self.config.document_id_field)),
                        error=str(e),
                    )

            logger.debug(
                "Batch restaurado",
                collection=f"{target_database}.{collection_id}",
                offset=offset,
                batch_size=batch_size,
            )

        logger.info(
            "Collection restaurada",
            backup_id=backup_id,
            source=f"{database_id}.{collection_id}",
            target=f"{target_database}.{collection_id}",
            restored=restored,
            failed=failed,
        )

        return restored, failed


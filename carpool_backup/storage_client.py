"""
StorageClient para cópia de backups no storage secundário (redundância).

Implementações:
- S3StorageClient: AWS S3 via boto3 (extra 's3')
- LocalStorageClient: Filesystem local (outro volume/mount)
"""

import os
import shutil
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class StorageClient(ABC):
    """
    Interface abstrata para storage secundário.

    Métodos retornam True/False em vez de levantar exceções; quem chama
    decide se a falha é fatal.
    """

    @abstractmethod
    def upload_backup(self, local_path: str, remote_key: str) -> bool:
        """
        Faz upload de arquivo de backup.

        Args:
            local_path: Caminho local do arquivo
            remote_key: Chave remota (path relativo no storage)

        Returns:
            True se sucesso, False se falha
        """
        pass

    @abstractmethod
    def delete_backup(self, remote_key: str) -> bool:
        pass

    @abstractmethod
    def list_backups(self, prefix: str = "") -> List[Dict]:
        """
        Lista arquivos disponíveis.

        Returns:
            Lista de dicts com: key, size, timestamp
        """
        pass

    def upload_files(self, base_path: str, relative_paths: List[str]) -> bool:
        """Faz upload de vários arquivos mantendo paths relativos como chaves."""
        for relpath in relative_paths:
            if not self.upload_backup(os.path.join(base_path, relpath), relpath):
                return False
        return True


class S3StorageClient(StorageClient):
    """
    Cliente S3 via boto3.

    Features:
    - Upload com server-side encryption (AES256)
    - Retry adaptativo do botocore
    """

    def __init__(
        self,
        bucket: str,
        region: str,
        prefix: str = "",
        aws_access_key: Optional[str] = None,
        aws_secret_key: Optional[str] = None,
    ):
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 não instalado. Instale com: pip install carpool-backup[s3]"
            )

        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")

        config = Config(region_name=region, retries={"max_attempts": 3, "mode": "adaptive"})

        if aws_access_key and aws_secret_key:
            self.s3_client = boto3.client(
                "s3",
                aws_access_key_id=aws_access_key,
                aws_secret_access_key=aws_secret_key,
                config=config,
            )
        else:
            # Usar IAM role
            self.s3_client = boto3.client("s3", config=config)

        logger.info("S3StorageClient inicializado", bucket=bucket, region=region, prefix=prefix)

    def _get_full_key(self, remote_key: str) -> str:
        if self.prefix and not remote_key.startswith(f"{self.prefix}/"):
            return f"{self.prefix}/{remote_key}"
        return remote_key

    def upload_backup(self, local_path: str, remote_key: str) -> bool:
        full_key = self._get_full_key(remote_key)

        try:
            start_time = time.time()

            self.s3_client.upload_file(
                local_path,
                self.bucket,
                full_key,
                ExtraArgs={
                    "ServerSideEncryption": "AES256",
                    "Metadata": {
                        "uploaded_at": datetime.now(timezone.utc).isoformat(),
                        "source": "carpool-backup",
                    },
                },
            )

            logger.info(
                "Upload S3 concluído com sucesso",
                remote_key=full_key,
                duration_seconds=round(time.time() - start_time, 2),
            )
            return True

        except Exception as e:
            logger.error(
                "Erro no upload S3",
                remote_key=full_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    def delete_backup(self, remote_key: str) -> bool:
        full_key = self._get_full_key(remote_key)

        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=full_key)
            logger.info("Backup S3 deletado com sucesso", remote_key=full_key)
            return True

        except Exception as e:
            logger.error(
                "Erro ao deletar backup S3",
                remote_key=full_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    def list_backups(self, prefix: str = "") -> List[Dict]:
        full_prefix = self._get_full_key(prefix) if prefix else self.prefix

        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            backups = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=full_prefix):
                for obj in page.get("Contents", []):
                    backups.append(
                        {"key": obj["Key"], "size": obj["Size"], "timestamp": obj["LastModified"]}
                    )
            return backups

        except Exception as e:
            logger.error("Erro ao listar backups S3", error=str(e), error_type=type(e).__name__)
            return []


class LocalStorageClient(StorageClient):
    """Cliente de filesystem local (cópia para outro diretório)."""

    def __init__(self, base_path: str):
        self.base_path = base_path
        os.makedirs(base_path, exist_ok=True)

        logger.info("LocalStorageClient inicializado", base_path=base_path)

    def _get_full_path(self, remote_key: str) -> str:
        return os.path.join(self.base_path, remote_key)

    def upload_backup(self, local_path: str, remote_key: str) -> bool:
        full_path = self._get_full_path(remote_key)

        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            shutil.copy2(local_path, full_path)

            logger.debug(
                "Backup copiado para storage local",
                destination=full_path,
                size_bytes=os.path.getsize(full_path),
            )
            return True

        except OSError as e:
            logger.error(
                "Erro ao copiar backup",
                destination=full_path,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    def delete_backup(self, remote_key: str) -> bool:
        full_path = self._get_full_path(remote_key)

        try:
            if not os.path.exists(full_path):
                logger.warning("Backup não encontrado para deletar", path=full_path)
                return False

            os.remove(full_path)
            return True

        except OSError as e:
            logger.error(
                "Erro ao deletar backup local",
                path=full_path,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    def list_backups(self, prefix: str = "") -> List[Dict]:
        search_path = self._get_full_path(prefix) if prefix else self.base_path
        backups = []

        if os.path.isdir(search_path):
            for root, _dirs, files in os.walk(search_path):
                for name in files:
                    file_path = os.path.join(root, name)
                    stat = os.stat(file_path)
                    backups.append(
                        {
                            "key": os.path.relpath(file_path, self.base_path),
                            "size": stat.st_size,
                            "timestamp": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                        }
                    )

        backups.sort(key=lambda x: x["timestamp"], reverse=True)
        return backups


def create_storage_client(location: str, region: str = "us-west-2") -> StorageClient:
    """
    Cria cliente de storage a partir do local configurado.

    Args:
        location: 's3://bucket/prefix' ou path local
        region: Região AWS (apenas S3)
    """
    if location.startswith("s3://"):
        bucket, _, prefix = location[len("s3://"):].partition("/")
        if not bucket:
            raise ValueError(f"Bucket S3 ausente em: {location}")
        return S3StorageClient(bucket=bucket, region=region, prefix=prefix)

    return LocalStorageClient(base_path=location)

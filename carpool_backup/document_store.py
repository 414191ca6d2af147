"""
DocumentStore: abstração do banco de documentos alvo de backup/restore.

Implementações:
- MongoDocumentStore: MongoDB via pymongo (retry em erros transientes)
- InMemoryDocumentStore: store em memória (desenvolvimento/testes)
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from pymongo import MongoClient
from pymongo.errors import AutoReconnect, ConnectionFailure, NetworkTimeout, PyMongoError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .exceptions import DocumentStoreError

logger = structlog.get_logger(__name__)

# Databases internos do MongoDB nunca entram no backup
SYSTEM_DATABASES = frozenset({"admin", "local", "config"})

TRANSIENT_ERRORS = (AutoReconnect, ConnectionFailure, NetworkTimeout)


class DocumentStore(ABC):
    """
    Interface do document store.

    Métodos:
    - list_databases: Enumera databases
    - list_collections: Enumera collections de um database
    - read_documents: Lê documentos (opcionalmente modificados após timestamp)
    - upsert_document: Insere ou substitui documento pela identidade
    - ping: Verifica conectividade
    """

    @abstractmethod
    def list_databases(self) -> List[str]:
        pass

    @abstractmethod
    def list_collections(self, database_id: str) -> List[str]:
        pass

    @abstractmethod
    def read_documents(
        self,
        database_id: str,
        collection_id: str,
        modified_after: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Lê documentos de uma collection.

        Args:
            database_id: Database de origem
            collection_id: Collection de origem
            modified_after: Se informado, apenas documentos com marcador de
                modificação estritamente maior

        Returns:
            Lista de documentos
        """
        pass

    @abstractmethod
    def upsert_document(
        self, database_id: str, collection_id: str, document: Dict[str, Any]
    ) -> None:
        pass

    @abstractmethod
    def ping(self) -> bool:
        pass


class MongoDocumentStore(DocumentStore):
    """
    Document store MongoDB.

    O marcador de modificação é um campo com epoch em segundos (default '_ts').
    Erros transientes são re-tentados 3 vezes; qualquer PyMongoError restante
    vira DocumentStoreError.
    """

    def __init__(
        self,
        mongodb_uri: str,
        modified_field: str = "_ts",
        id_field: str = "_id",
        client: Optional[MongoClient] = None,
    ):
        self.mongodb_uri = mongodb_uri
        self.modified_field = modified_field
        self.id_field = id_field
        self._client = client

        logger.info(
            "MongoDocumentStore inicializado",
            modified_field=modified_field,
            id_field=id_field,
        )

    @property
    def client(self) -> MongoClient:
        """Lazy initialization do cliente MongoDB."""
        if self._client is None:
            self._client = MongoClient(self.mongodb_uri, serverSelectionTimeoutMS=5000)
        return self._client

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _with_retry(self, operation, *args):
        return operation(*args)

    def _execute(self, description: str, operation, *args):
        try:
            return self._with_retry(operation, *args)
        except PyMongoError as e:
            logger.error(
                "Erro no document store",
                operation=description,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DocumentStoreError(f"{description} falhou: {e}") from e

    def list_databases(self) -> List[str]:
        names = self._execute("list_databases", self.client.list_database_names)
        return [name for name in names if name not in SYSTEM_DATABASES]

    def list_collections(self, database_id: str) -> List[str]:
        names = self._execute(
            "list_collections", self.client[database_id].list_collection_names
        )
        return [name for name in names if not name.startswith("system.")]

    def read_documents(
        self,
        database_id: str,
        collection_id: str,
        modified_after: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if modified_after is not None:
            query = {self.modified_field: {"$gt": modified_after.timestamp()}}

        collection = self.client[database_id][collection_id]
        return self._execute(
            "read_documents", lambda: list(collection.find(query))
        )

    def upsert_document(
        self, database_id: str, collection_id: str, document: Dict[str, Any]
    ) -> None:
        if self.id_field not in document:
            raise DocumentStoreError(
                f"Documento sem campo de identidade '{self.id_field}'"
            )

        collection = self.client[database_id][collection_id]
        self._execute(
            "upsert_document",
            collection.replace_one,
            {self.id_field: document[self.id_field]},
            document,
            True,
        )

    def ping(self) -> bool:
        try:
            self._execute("ping", self.client.admin.command, "ping")
            return True
        except DocumentStoreError:
            return False


class InMemoryDocumentStore(DocumentStore):
    """Document store em memória com a mesma semântica do MongoDocumentStore."""

    def __init__(self, modified_field: str = "_ts", id_field: str = "_id"):
        self.modified_field = modified_field
        self.id_field = id_field
        self._data: Dict[str, Dict[str, Dict[Any, Dict[str, Any]]]] = {}

    def create_collection(self, database_id: str, collection_id: str) -> None:
        self._data.setdefault(database_id, {}).setdefault(collection_id, {})

    def put_document(
        self, database_id: str, collection_id: str, document: Dict[str, Any]
    ) -> None:
        """Grava documento diretamente (seed de dados)."""
        self.create_collection(database_id, collection_id)
        self._data[database_id][collection_id][document[self.id_field]] = copy.deepcopy(
            document
        )

    def documents(self, database_id: str, collection_id: str) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(doc)
            for doc in self._data.get(database_id, {}).get(collection_id, {}).values()
        ]

    def list_databases(self) -> List[str]:
        return list(self._data.keys())

    def list_collections(self, database_id: str) -> List[str]:
        return list(self._data.get(database_id, {}).keys())

    def read_documents(
        self,
        database_id: str,
        collection_id: str,
        modified_after: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        documents = self.documents(database_id, collection_id)
        if modified_after is None:
            return documents

        threshold = modified_after.timestamp()
        return [
            doc for doc in documents if doc.get(self.modified_field, 0) > threshold
        ]

    def upsert_document(
        self, database_id: str, collection_id: str, document: Dict[str, Any]
    ) -> None:
        if self.id_field not in document:
            raise DocumentStoreError(
                f"Documento sem campo de identidade '{self.id_field}'"
            )
        self.put_document(database_id, collection_id, document)

    def ping(self) -> bool:
        return True

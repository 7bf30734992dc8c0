import logging
from collections.abc import Mapping
from typing import Any, Callable, Iterable, List, Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError
from pymongo.write_concern import WriteConcern

from docharness.config import Settings
from docharness.errors import (
    QueryError,
    StoreConnectionError,
    WriteError,
    translate_store_error,
)
from docharness.models.document import DatabaseRecord, Document
from docharness.models.query import (
    FilterLike,
    InsertReceipt,
    WriteConcernLevel,
    build_query,
)
from docharness.services.cursor import DocumentCursor

logger = logging.getLogger(__name__)


def get_write_concern(level: WriteConcernLevel, journal: bool = True) -> WriteConcern:
    """
    Convert a write concern level to a PyMongo WriteConcern.

    On a single-node instance "majority" is a majority of one: the write is
    acknowledged once that node has it, journaled when journal is set. It
    does not survive the loss of that node.
    """
    if level == WriteConcernLevel.W0:
        # unacknowledged writes cannot request journaling
        return WriteConcern(w=0)
    elif level == WriteConcernLevel.W1:
        return WriteConcern(w=1, j=journal)
    elif level == WriteConcernLevel.MAJORITY:
        return WriteConcern(w="majority", j=journal)
    else:
        return WriteConcern(w=1, j=journal)


def _to_payload(doc: Any) -> dict:
    if isinstance(doc, DatabaseRecord):
        return doc.model_dump()
    if isinstance(doc, Document):
        return doc.to_dict()
    if isinstance(doc, Mapping):
        try:
            return Document(doc).to_dict()
        except TypeError as e:
            raise WriteError(str(e)) from e
    raise WriteError(f"Cannot insert value of type {type(doc).__name__}; expected a document")


class StoreHandle:
    """Operations against one (database, collection) pair"""

    def __init__(self, collection: Collection, on_write: Optional[Callable[[], None]] = None):
        self._collection = collection
        self._on_write = on_write

    def __repr__(self) -> str:
        return f"StoreHandle({self.database_name}.{self.collection_name})"

    @property
    def database_name(self) -> str:
        return self._collection.database.name

    @property
    def collection_name(self) -> str:
        return self._collection.name

    @property
    def write_concern(self) -> WriteConcern:
        return self._collection.write_concern

    def _server_used(self) -> Optional[str]:
        address = self._collection.database.client.address
        if isinstance(address, tuple):
            return f"{address[0]}:{address[1]}"
        return None

    def _written(self) -> None:
        if self._on_write is not None:
            self._on_write()

    def insert_one(self, doc: Any) -> InsertReceipt:
        """
        Insert a single document.

        The caller's object is not modified; the store-assigned id is
        returned in the receipt.

        Raises:
            WriteError: the store rejected the document
            StoreConnectionError: connectivity was lost
        """
        payload = _to_payload(doc)
        try:
            result = self._collection.insert_one(payload)
        except Exception as e:
            logger.error(f"Insert into {self} failed: {e}")
            raise translate_store_error(e, f"insert into {self}", WriteError) from e

        self._written()
        receipt = InsertReceipt(
            inserted_id=str(result.inserted_id),
            acknowledged=result.acknowledged,
            server_used=self._server_used()
        )
        logger.debug(f"Inserted {receipt.inserted_id} into {self}")
        return receipt

    def insert_many(self, docs: Iterable[Any]) -> List[str]:
        """Insert documents in order; returns their ids"""
        payloads = [_to_payload(doc) for doc in docs]
        if not payloads:
            return []
        try:
            result = self._collection.insert_many(payloads, ordered=True)
        except Exception as e:
            logger.error(f"Bulk insert into {self} failed: {e}")
            raise translate_store_error(e, f"insert_many into {self}", WriteError) from e

        self._written()
        return [str(inserted_id) for inserted_id in result.inserted_ids]

    def find(self, filter: FilterLike = None) -> DocumentCursor:
        """
        Start a query. Matches every document when filter is None.

        The returned cursor is lazy and single-pass; wrap it in a with block.
        """
        query = build_query(filter)
        try:
            cursor = self._collection.find(query)
        except Exception as e:
            raise translate_store_error(e, f"find on {self}", QueryError) from e
        return DocumentCursor(cursor, description=f"find {query} on {self}")

    def first(self, filter: FilterLike = None) -> Optional[Document]:
        """First matching document, or None when nothing matches"""
        query = build_query(filter)
        try:
            raw = self._collection.find_one(query)
        except Exception as e:
            raise translate_store_error(e, f"find_one on {self}", QueryError) from e
        if raw is None:
            return None
        return Document(raw)

    def count_documents(self, filter: FilterLike = None) -> int:
        query = build_query(filter)
        try:
            return self._collection.count_documents(query)
        except Exception as e:
            raise translate_store_error(e, f"count on {self}", QueryError) from e

    def drop(self) -> None:
        """Delete every document and the collection itself; idempotent"""
        try:
            self._collection.drop()
        except Exception as e:
            logger.error(f"Drop of {self} failed: {e}")
            raise translate_store_error(e, f"drop of {self}", WriteError) from e
        logger.debug(f"Dropped {self}")


class StoreSession:
    """
    Connectivity to one database instance, shared across a suite.

    Opened once and passed explicitly to whatever needs it; handles are
    cheap and created per collection.
    """

    def __init__(self, uri: str, settings: Settings, client: Optional[MongoClient] = None):
        self.uri = uri
        self.settings = settings
        self.write_concern = get_write_concern(
            settings.write_concern,
            settings.write_concern_journal
        )

        if client is None:
            options = {
                "serverSelectionTimeoutMS": settings.server_selection_timeout_ms,
                "connectTimeoutMS": settings.connect_timeout_ms,
            }
            if settings.username:
                options.update(
                    username=settings.username,
                    password=settings.password,
                    authSource=settings.auth_source
                )
            client = MongoClient(uri, **options)

        self.client = client
        self._closed = False
        logger.info(f"StoreSession opened for {uri}")

    def __enter__(self) -> "StoreSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def ping(self) -> None:
        """
        Round-trip to the server.

        Raises:
            StoreConnectionError: the server did not answer
        """
        try:
            self.client.admin.command('ping')
        except PyMongoError as e:
            raise StoreConnectionError(f"Ping to {self.uri} failed: {e}") from e

    @property
    def server_address(self) -> Optional[str]:
        address = self.client.address
        if isinstance(address, tuple):
            return f"{address[0]}:{address[1]}"
        return None

    def list_collection_names(self, database: Optional[str] = None) -> List[str]:
        database = database or self.settings.database_name
        try:
            return sorted(self.client[database].list_collection_names())
        except Exception as e:
            raise translate_store_error(e, f"listing collections of {database}", QueryError) from e

    def collection(
        self,
        database: Optional[str] = None,
        collection: Optional[str] = None,
        on_write: Optional[Callable[[], None]] = None
    ) -> StoreHandle:
        """Handle on a collection, defaulting to the configured names"""
        database = database or self.settings.database_name
        collection = collection or self.settings.collection_name
        coll = self.client[database].get_collection(collection, write_concern=self.write_concern)
        return StoreHandle(coll, on_write=on_write)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.client.close()
        logger.info(f"StoreSession closed for {self.uri}")

import logging
from typing import Any, Iterator, List

from docharness.errors import QueryError, translate_store_error
from docharness.models.document import Document

logger = logging.getLogger(__name__)


class DocumentCursor:
    """
    Lazy, forward-only, single-pass view over a query's results.

    Iterating a second time, or after close(), raises QueryError: issue
    find() again instead.
    Use it as a context manager so the server-side cursor is released on
    every exit path, including an early break out of the loop.
    """

    def __init__(self, cursor: Any, description: str = "find"):
        self._cursor = cursor
        self._description = description
        self._started = False
        self._closed = False

    def __enter__(self) -> "DocumentCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[Document]:
        if self._started:
            raise QueryError(
                f"Cursor for {self._description} was already iterated; issue find() again"
            )
        if self._closed:
            raise QueryError(
                f"Cursor for {self._description} was closed before iteration; issue find() again"
            )
        self._started = True
        return self._iterate()

    def _iterate(self) -> Iterator[Document]:
        try:
            for raw in self._cursor:
                yield Document(raw)
        except Exception as e:
            logger.error(f"Cursor fault during {self._description}: {e}")
            raise translate_store_error(e, self._description, QueryError) from e
        finally:
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the underlying driver cursor; safe to call repeatedly"""
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
            logger.debug(f"Closed cursor for {self._description}")
        except Exception as e:
            logger.warning(f"Failed to close cursor for {self._description}: {e}")

    def to_list(self) -> List[Document]:
        """Drain the cursor into a list and release it"""
        with self:
            return list(self)

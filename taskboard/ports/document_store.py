"""Document store port - abstract interface for collection-based storage.

Core modules depend on this protocol, never on a specific database.
Each call is one atomic single-document operation; there are no
multi-document transactions and concurrent writes resolve last-write-wins.
"""

from __future__ import annotations

from typing import Any, Protocol


class DocumentStore(Protocol):
    """Abstract document store used by the typed collections in data/db.py."""

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return the document (with its "id" key) or None."""
        ...

    def query(self, collection: str, **equals: Any) -> list[dict[str, Any]]:
        """Return documents whose fields equal every given value.

        A None value matches documents where the field is absent.
        """
        ...

    def create(
        self, collection: str, data: dict[str, Any], doc_id: str | None = None,
    ) -> dict[str, Any]:
        """Insert a document and return it with its assigned id."""
        ...

    def update(
        self, collection: str, doc_id: str, changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge *changes* into the document and return the result.

        A CLEAR value removes the field. Raises NotFound for a missing id.
        """
        ...

    def delete(self, collection: str, doc_id: str) -> bool:
        """Hard-delete a document. Returns False if it did not exist."""
        ...

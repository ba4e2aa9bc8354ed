"""
Document Store Client - collection CRUD over the Document table.

Implements:
    - get_all: every document in a collection, optionally ordered by a body field
    - get_by_id / get_where: single document and equality-filtered lookups
    - create / update / delete: writes stamped with createdAt/updatedAt
    - increment: atomic counter update for stock quantities

Documents are returned as plain dicts with their id merged in under ``id``.
Database failures surface as DocumentStoreError so callers can decide whether
a missing collection is fatal (the catalog) or degradable (a sales source).
"""
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from .models import Document

logger = logging.getLogger(__name__)

FIELD_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


class DocumentStoreError(Exception):
    """Raised when the underlying store cannot serve a request."""
    pass


class DocumentNotFound(DocumentStoreError):
    """Raised when a document id does not exist in its collection."""
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document {doc_id} not found in collection {collection}")


class DocumentStore:
    """
    Collection/document API used by every service in the project.

    Usage:
        store = DocumentStore()
        products = store.get_all('products', 'createdAt', 'desc')
        store.update('products', products[0]['id'], {'quantity': 12})
    """

    def _ordered(self, queryset, order_by: Optional[str], direction: str):
        if not order_by:
            return queryset
        if not FIELD_NAME_RE.match(order_by):
            logger.warning(f"Ignoring unsafe order field {order_by!r}")
            return queryset
        prefix = '-' if direction.lower() == 'desc' else ''
        return queryset.order_by(f'{prefix}data__{order_by}', f'{prefix}created_at')

    def get_all(
        self,
        collection: str,
        order_by: Optional[str] = 'createdAt',
        direction: str = 'desc',
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch all documents from a collection.

        Args:
            collection: Collection name
            order_by: Body field to sort on (None for insertion order)
            direction: 'asc' or 'desc'
            limit: Optional maximum number of documents

        Raises:
            DocumentStoreError: If the database query fails
        """
        queryset = self._ordered(
            Document.objects.filter(collection=collection), order_by, direction
        )
        if limit is not None:
            queryset = queryset[:limit]

        try:
            documents = [doc.to_dict() for doc in queryset]
        except DatabaseError as e:
            logger.error(f"Error getting documents from {collection}: {e}")
            raise DocumentStoreError(f"Failed to read collection {collection}: {e}") from e

        logger.debug(f"Found {len(documents)} documents in collection {collection}")
        return documents

    def get_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            document = Document.objects.filter(collection=collection, key=doc_id).first()
        except DatabaseError as e:
            raise DocumentStoreError(f"Failed to read {collection}/{doc_id}: {e}") from e
        return document.to_dict() if document else None

    def get_where(
        self,
        collection: str,
        field: str,
        value: Any,
        order_by: Optional[str] = None,
        direction: str = 'desc',
    ) -> List[Dict[str, Any]]:
        """Fetch documents whose body ``field`` equals ``value``."""
        if not FIELD_NAME_RE.match(field):
            raise DocumentStoreError(f"Invalid field name {field!r}")

        queryset = self._ordered(
            Document.objects.filter(collection=collection, **{f'data__{field}': value}),
            order_by,
            direction,
        )
        try:
            return [doc.to_dict() for doc in queryset]
        except DatabaseError as e:
            logger.error(
                f"Error getting filtered documents from {collection} where {field} == {value!r}: {e}"
            )
            raise DocumentStoreError(f"Failed to query collection {collection}: {e}") from e

    def create(
        self,
        collection: str,
        data: Dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a document, stamping createdAt/updatedAt unless supplied."""
        now = timezone.now().isoformat()
        body = {key: value for key, value in data.items() if key != 'id'}
        body.setdefault('createdAt', now)
        body['updatedAt'] = now

        kwargs = {'collection': collection, 'data': body}
        if doc_id:
            kwargs['key'] = doc_id

        try:
            document = Document.objects.create(**kwargs)
        except DatabaseError as e:
            logger.error(f"Error creating document in {collection}: {e}")
            raise DocumentStoreError(f"Failed to create document in {collection}: {e}") from e

        logger.info(f"Created document {collection}/{document.key}")
        return document.to_dict()

    def _locked_write(self, collection: str, doc_id: str, apply: Callable[[Dict[str, Any]], None]) -> Dict[str, Any]:
        """Read the document under a row lock, let ``apply`` mutate its body, save."""
        try:
            with transaction.atomic():
                document = (
                    Document.objects.select_for_update()
                    .filter(collection=collection, key=doc_id)
                    .first()
                )
                if document is None:
                    raise DocumentNotFound(collection, doc_id)

                body = dict(document.data or {})
                apply(body)
                body['updatedAt'] = timezone.now().isoformat()
                document.data = body
                document.save(update_fields=['data', 'updated_at'])
        except DatabaseError as e:
            logger.error(f"Error updating {collection}/{doc_id}: {e}")
            raise DocumentStoreError(f"Failed to update {collection}/{doc_id}: {e}") from e

        return document.to_dict()

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge ``data`` into an existing document.

        Raises:
            DocumentNotFound: If the document does not exist
        """
        def merge(body):
            body.update({key: value for key, value in data.items() if key != 'id'})

        return self._locked_write(collection, doc_id, merge)

    def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        delta: int,
        floor: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Add ``delta`` to a numeric body field inside the row lock.

        A missing or non-numeric value counts as 0. With ``floor`` set the
        result never drops below it. ``extra`` fields are merged in the same
        write.

        Raises:
            DocumentNotFound: If the document does not exist
        """
        def add(body):
            value = _as_int(body.get(field)) + delta
            if floor is not None:
                value = max(floor, value)
            body.update({key: v for key, v in (extra or {}).items() if key != 'id'})
            body[field] = value

        return self._locked_write(collection, doc_id, add)

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            deleted, _ = Document.objects.filter(collection=collection, key=doc_id).delete()
        except DatabaseError as e:
            raise DocumentStoreError(f"Failed to delete {collection}/{doc_id}: {e}") from e
        if not deleted:
            raise DocumentNotFound(collection, doc_id)
        logger.info(f"Deleted document {collection}/{doc_id}")


document_store = DocumentStore()


def get_document_store() -> DocumentStore:
    """Default store instance; services accept an explicit store for injection."""
    return document_store

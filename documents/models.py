"""
Document Models - schemaless collection storage.

Models:
    - Document: One JSON document in a named collection (products, cashbills,
      creditbills, soldProducts, productReturns, users, ...)

Collections have no fixed schema. Field names inside ``data`` follow the
camelCase shapes the billing frontend writes (itemCode, itemName, items[], ...).
"""
import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


def generate_document_key() -> str:
    return uuid.uuid4().hex


class Document(models.Model):
    """
    A single document in a collection.

    Constraint: the document key is unique within its collection.
    """
    collection = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Collection the document belongs to"
    )
    key = models.CharField(
        max_length=128,
        default=generate_document_key,
        help_text="Document id, unique per collection"
    )
    data = models.JSONField(
        default=dict,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text="Document body"
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Document'
        verbose_name_plural = 'Documents'
        ordering = ['collection', '-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['collection', 'key'],
                name='unique_collection_document_key'
            )
        ]
        indexes = [
            models.Index(fields=['collection', 'created_at'], name='document_collection_created'),
        ]

    def __str__(self):
        return f"{self.collection}/{self.key}"

    def to_dict(self) -> dict:
        """Document body with its id merged in, the shape callers work with."""
        return {'id': self.key, **(self.data or {})}

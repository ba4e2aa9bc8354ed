"""
Tests for the document store client.

Test Cases:
1. Create stamps timestamps and returns the id
2. get_all orders by a body field
3. get_where filters on body field equality
4. Update merges fields and increment is atomic; missing documents raise DocumentNotFound
5. Database failures surface as DocumentStoreError
"""
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase

from documents.models import Document
from documents.store import DocumentNotFound, DocumentStore, DocumentStoreError


class DocumentStoreTestCase(TestCase):

    def setUp(self):
        self.store = DocumentStore()

    def test_create_returns_document_with_id_and_timestamps(self):
        created = self.store.create('products', {'itemCode': 'P1', 'itemName': 'Fridge'})

        self.assertTrue(created['id'])
        self.assertEqual(created['itemCode'], 'P1')
        self.assertIn('createdAt', created)
        self.assertIn('updatedAt', created)
        self.assertEqual(Document.objects.filter(collection='products').count(), 1)

    def test_create_with_explicit_id(self):
        created = self.store.create('users', {'role': 'admin'}, doc_id='uid-1')

        self.assertEqual(created['id'], 'uid-1')
        self.assertEqual(self.store.get_by_id('users', 'uid-1')['role'], 'admin')

    def test_create_ignores_id_inside_body(self):
        created = self.store.create('products', {'id': 'bogus', 'itemCode': 'P1'}, doc_id='real')

        document = Document.objects.get(key='real')
        self.assertNotIn('id', document.data)
        self.assertEqual(created['id'], 'real')

    def test_get_all_orders_by_body_field(self):
        self.store.create('soldProducts', {'itemCode': 'A', 'soldDate': '2024-01-01T00:00:00+00:00'})
        self.store.create('soldProducts', {'itemCode': 'B', 'soldDate': '2024-03-01T00:00:00+00:00'})
        self.store.create('soldProducts', {'itemCode': 'C', 'soldDate': '2024-02-01T00:00:00+00:00'})

        newest_first = self.store.get_all('soldProducts', 'soldDate', 'desc')
        oldest_first = self.store.get_all('soldProducts', 'soldDate', 'asc')

        self.assertEqual([doc['itemCode'] for doc in newest_first], ['B', 'C', 'A'])
        self.assertEqual([doc['itemCode'] for doc in oldest_first], ['A', 'C', 'B'])

    def test_get_all_respects_collection_and_limit(self):
        for code in ('P1', 'P2', 'P3'):
            self.store.create('products', {'itemCode': code})
        self.store.create('cashbills', {'items': []})

        self.assertEqual(len(self.store.get_all('products')), 3)
        self.assertEqual(len(self.store.get_all('products', limit=2)), 2)
        self.assertEqual(self.store.get_all('creditbills'), [])

    def test_get_where_filters_on_field(self):
        self.store.create('products', {'itemCode': 'P1', 'itemName': 'Fridge'})
        self.store.create('products', {'itemCode': 'P2', 'itemName': 'AC'})

        matches = self.store.get_where('products', 'itemCode', 'P2')

        self.assertEqual(len(matches), 1)
        self.assertEqual(matches[0]['itemName'], 'AC')

    def test_get_where_rejects_unsafe_field_name(self):
        with self.assertRaises(DocumentStoreError):
            self.store.get_where('products', 'itemCode__in', ['P1'])

    def test_update_merges_fields(self):
        created = self.store.create('products', {'itemCode': 'P1', 'quantity': 10})

        updated = self.store.update('products', created['id'], {'quantity': 4})

        self.assertEqual(updated['quantity'], 4)
        self.assertEqual(updated['itemCode'], 'P1')

    def test_update_missing_document_raises(self):
        with self.assertRaises(DocumentNotFound):
            self.store.update('products', 'missing', {'quantity': 1})

    def test_increment_adds_delta_and_merges_extra(self):
        created = self.store.create('products', {'itemCode': 'P1', 'quantity': 10})

        updated = self.store.increment('products', created['id'], 'quantity', 5, extra={'gst': 18})

        self.assertEqual(updated['quantity'], 15)
        self.assertEqual(updated['gst'], 18)

    def test_increment_respects_floor_and_bad_values(self):
        created = self.store.create('products', {'itemCode': 'P1', 'quantity': 'lots'})

        updated = self.store.increment('products', created['id'], 'quantity', -3, floor=0)

        self.assertEqual(updated['quantity'], 0)

    def test_increment_missing_document_raises(self):
        with self.assertRaises(DocumentNotFound):
            self.store.increment('products', 'missing', 'quantity', 1)

    def test_delete(self):
        created = self.store.create('products', {'itemCode': 'P1'})

        self.store.delete('products', created['id'])

        self.assertIsNone(self.store.get_by_id('products', created['id']))
        with self.assertRaises(DocumentNotFound):
            self.store.delete('products', created['id'])

    def test_database_error_is_wrapped(self):
        with patch.object(Document.objects, 'filter', side_effect=DatabaseError('connection lost')):
            with self.assertRaises(DocumentStoreError):
                self.store.get_by_id('products', 'x')

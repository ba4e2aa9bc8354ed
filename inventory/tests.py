"""
Tests for inventory reconciliation.

Test Cases:
1. Sales normalization from manual entries and bills
2. Source aggregation with failing and slow sources
3. Match cascade and deduplication
4. Stock status, velocity and alerts
5. End-to-end analysis against the document store
6. Notifications (email task queuing and live events)
7. Catalog maintenance and manual sale records
8. API endpoints
"""
import threading
from datetime import datetime, timedelta, timezone as dt_timezone
from smtplib import SMTPException
from unittest.mock import MagicMock, patch

from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from documents.store import DocumentStore, DocumentStoreError
from inventory.matching import MatchRule, deduplicate, deduplicate_matches, find_matches, match_rule
from inventory.notifications import AlertEmitter, RedisStockEventBroadcaster, stock_event
from inventory.records import (
    INDEFINITE_DAYS,
    AlertType,
    Product,
    SaleSource,
    SoldItem,
    StockStatus,
    Thresholds,
    parse_timestamp,
    to_int,
)
from inventory.reports import build_low_stock_pdf
from inventory.sales import load_sold_items, normalize_bill, normalize_manual_entry
from inventory.services import (
    CatalogUnavailableError,
    ProductValidationError,
    analyze_inventory,
    create_products,
    get_inventory_with_sales,
    get_low_stock_levels,
    get_unified_sales,
    record_sold_product,
    restock_product,
    update_product,
)
from inventory.stock import analyze_product, classify_stock, days_of_stock, sales_velocity, summarize
from inventory.tasks import send_low_stock_alert

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=dt_timezone.utc)

SYNC_INVENTORY = {
    'SOURCE_FETCH_WORKERS': 1,
    'ENABLE_EMAIL_ALERTS': False,
    'ENABLE_LIVE_EVENTS': False,
}


def product(code='P1', name='Fridge', quantity=10, unit_price=100.0):
    return Product(id=f'id-{code}', item_code=code, item_name=name, quantity=quantity, unit_price=unit_price)


def sale(code='', name='', quantity=1, source='ManualEntry', invoice='N/A', sold_date=None):
    return SoldItem(
        item_code=code, item_name=name, quantity=quantity,
        source=source, invoice=invoice, sold_date=sold_date,
    )


def row_for(prod, sales, thresholds=Thresholds()):
    matches = deduplicate_matches(find_matches(prod, sales))
    return analyze_product(prod, matches, thresholds, window_days=30, rapid_depletion_days=7, now=NOW)


class FakeStore:
    """Document store double serving fixed collections."""

    def __init__(self, collections=None, failing=(), blocking=(), release=None):
        self.collections = collections or {}
        self.failing = set(failing)
        self.blocking = set(blocking)
        self.release = release or threading.Event()

    def get_all(self, collection, order_by='createdAt', direction='desc', limit=None):
        if collection in self.failing:
            raise DocumentStoreError(f'{collection} unavailable')
        if collection in self.blocking:
            self.release.wait(5)
        return list(self.collections.get(collection, []))


class CoercionTestCase(SimpleTestCase):

    def test_to_int_parses_leading_number(self):
        self.assertEqual(to_int('3'), 3)
        self.assertEqual(to_int('2.9'), 2)
        self.assertEqual(to_int('abc'), 0)
        self.assertEqual(to_int(None), 0)
        self.assertEqual(to_int(True), 0)

    def test_parse_timestamp_shapes(self):
        self.assertEqual(parse_timestamp('2024-06-01T10:00:00Z'), datetime(2024, 6, 1, 10, tzinfo=dt_timezone.utc))
        self.assertEqual(parse_timestamp('2024-06-01'), datetime(2024, 6, 1, tzinfo=dt_timezone.utc))
        self.assertEqual(parse_timestamp({'_seconds': 0, '_nanoseconds': 0}), datetime(1970, 1, 1, tzinfo=dt_timezone.utc))
        self.assertEqual(parse_timestamp(1717236000000), datetime(2024, 6, 1, 10, tzinfo=dt_timezone.utc))
        self.assertIsNone(parse_timestamp('not a date'))
        self.assertIsNone(parse_timestamp(None))

    def test_thresholds_validation(self):
        with self.assertRaises(ValueError):
            Thresholds(low=6, medium=5)
        with self.assertRaises(ValueError):
            Thresholds(low=-1, medium=5)
        self.assertEqual(Thresholds.from_config({'low': 5}).to_dict(), {'low': 5, 'medium': 5})


class NormalizationTestCase(SimpleTestCase):

    def test_manual_entry_defaults(self):
        item = normalize_manual_entry({'itemName': 'Fridge'})

        self.assertEqual(item.item_code, '')
        self.assertEqual(item.quantity, 0)
        self.assertEqual(item.source, 'ManualEntry')
        self.assertEqual(item.invoice, 'N/A')

    def test_manual_copy_of_bill_keeps_bill_source(self):
        item = normalize_manual_entry({
            'itemCode': 'P1', 'quantity': '2', 'source': 'Cash Bill', 'invoiceNumber': 'CB-1',
        })

        self.assertEqual(item.source, 'CashBill')
        self.assertEqual(item.invoice, 'CB-1')
        self.assertEqual(item.quantity, 2)

    def test_bill_alias_priority(self):
        items = normalize_bill({
            'invoiceNumber': 'CB-7',
            'billDate': '2024-06-01',
            'items': [
                {'code': 'P1', 'itemCode': 'IGNORED', 'itemname': 'Fridge', 'rate': 150, 'quantity': 3},
                {'code': '', 'itemCode': 'P2', 'itemName': 'AC', 'unitPrice': '900', 'quantity': '1'},
            ],
        }, source=SaleSource.CASH_BILL)

        self.assertEqual([i.item_code for i in items], ['P1', 'P2'])
        self.assertEqual(items[0].item_name, 'Fridge')
        self.assertEqual(items[0].unit_price, 150.0)
        self.assertEqual(items[1].unit_price, 900.0)
        self.assertTrue(all(i.invoice == 'CB-7' for i in items))
        self.assertEqual(items[0].sold_date, datetime(2024, 6, 1, tzinfo=dt_timezone.utc))

    def test_malformed_bills_degrade(self):
        self.assertEqual(normalize_bill({'items': 'oops'}, SaleSource.CASH_BILL), [])
        self.assertEqual(normalize_bill({}, SaleSource.CASH_BILL), [])

        items = normalize_bill({'items': [None, 'x', {'code': 'P1', 'quantity': 'many'}]}, SaleSource.CASH_BILL)
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].quantity, 0)
        self.assertEqual(items[0].invoice, 'N/A')

    def test_out_of_range_store_timestamp_degrades(self):
        self.assertIsNone(parse_timestamp({'_seconds': 1e20}))

        bill = {'invoiceNumber': 'CB-9', 'billDate': {'_seconds': 1e20}, 'items': [{'code': 'P1', 'quantity': 2}]}
        result = load_sold_items(FakeStore({'cashbills': [bill]}), workers=1)

        self.assertEqual(result.failed_sources, [])
        self.assertEqual(len(result.items), 1)
        self.assertIsNone(result.items[0].sold_date)
        self.assertEqual(result.items[0].quantity, 2)

    def test_negative_quantities_count_as_nothing_sold(self):
        items = normalize_bill({'items': [{'code': 'P1', 'quantity': -5}]}, SaleSource.CASH_BILL)
        self.assertEqual(items[0].quantity, 0)
        self.assertEqual(normalize_manual_entry({'itemCode': 'P1', 'quantity': '-2'}).quantity, 0)


class SalesAggregationTestCase(SimpleTestCase):

    collections = {
        'soldProducts': [{'itemCode': 'P1', 'quantity': 1}],
        'cashbills': [{'invoiceNumber': 'CB-1', 'items': [{'code': 'P1', 'quantity': 3}]}],
        'creditbills': [{'invoiceNumber': 'CR-1', 'items': [{'code': 'P1', 'quantity': 2}]}],
    }

    def test_all_sources_loaded(self):
        result = load_sold_items(FakeStore(self.collections), workers=1)

        self.assertEqual(len(result.items), 3)
        self.assertEqual(result.failed_sources, [])
        self.assertEqual(result.loaded, {'soldProducts': 1, 'cashbills': 1, 'creditbills': 1})

    def test_failed_source_still_yields_result(self):
        result = load_sold_items(FakeStore(self.collections, failing={'cashbills'}), workers=1)

        self.assertEqual(result.failed_sources, ['cashbills'])
        self.assertEqual(sorted(i.source for i in result.items), ['CreditBill', 'ManualEntry'])

    def test_concurrent_fetch_with_failure(self):
        result = load_sold_items(FakeStore(self.collections, failing={'soldProducts'}), workers=3, timeout=5)

        self.assertEqual(result.failed_sources, ['soldProducts'])
        self.assertEqual(len(result.items), 2)

    def test_slow_source_times_out(self):
        store = FakeStore(self.collections, blocking={'creditbills'})
        try:
            result = load_sold_items(store, workers=3, timeout=0.2)
        finally:
            store.release.set()

        self.assertEqual(result.failed_sources, ['creditbills'])
        self.assertEqual(result.loaded['cashbills'], 1)


class MatchingTestCase(SimpleTestCase):

    def test_cascade_rules(self):
        fridge = product('P1', 'Fridge')

        self.assertEqual(match_rule(fridge, sale(code='P1', name='Other')), MatchRule.EXACT_CODE)
        self.assertEqual(match_rule(fridge, sale(code='X', name='Fridge')), MatchRule.EXACT_NAME)
        self.assertEqual(match_rule(fridge, sale(name=' fridge ')), MatchRule.CASE_INSENSITIVE_NAME)
        self.assertEqual(match_rule(fridge, sale(name='Fridge 250L')), MatchRule.PARTIAL_NAME)
        self.assertEqual(match_rule(fridge, sale(code='p1-b')), MatchRule.PARTIAL_CODE)
        self.assertIsNone(match_rule(fridge, sale(code='Q9', name='Oven')))

    def test_blank_sale_matches_nothing(self):
        blank = sale(code='', name='', quantity=7)

        self.assertIsNone(match_rule(product('P1', 'Fridge'), blank))
        self.assertIsNone(match_rule(product('', ''), blank))
        row = row_for(product('P1', 'Fridge', quantity=10), [blank])
        self.assertEqual(row.total_sold, 0)
        self.assertEqual(row.current_stock, 10)

    def test_overlapping_names_both_match(self):
        # Substring matching attributes one sale to both products
        remote_sale = sale(name='AC Remote Sale', quantity=1)

        self.assertEqual(match_rule(product('P3', 'AC'), remote_sale), MatchRule.PARTIAL_NAME)
        self.assertEqual(match_rule(product('P4', 'AC Remote'), remote_sale), MatchRule.PARTIAL_NAME)

    def test_deduplicate_keeps_first(self):
        first = sale(code='P1', name='Fridge', quantity=2, source='CashBill', invoice='CB-1')
        same = sale(code='P1', name='Fridge', quantity=2, source='CashBill', invoice='CB-1', sold_date=NOW)
        other_invoice = sale(code='P1', name='Fridge', quantity=2, source='CashBill', invoice='CB-2')

        unique = deduplicate([first, same, other_invoice])

        self.assertEqual(unique, [first, other_invoice])


class StockCalculatorTestCase(SimpleTestCase):

    def test_classify_boundaries(self):
        thresholds = Thresholds(low=2, medium=5)

        self.assertEqual(classify_stock(0, thresholds), StockStatus.OUT_OF_STOCK)
        self.assertEqual(classify_stock(2, thresholds), StockStatus.LOW_STOCK)
        self.assertEqual(classify_stock(5, thresholds), StockStatus.MEDIUM_STOCK)
        self.assertEqual(classify_stock(6, thresholds), StockStatus.GOOD_STOCK)

    def test_fridge_example_with_both_threshold_sets(self):
        fridge = product('P1', 'Fridge', quantity=10)
        sales = [sale(code='P1', quantity=3, source='CashBill'), sale(code='P1', quantity=2, source='CreditBill')]

        canonical = row_for(fridge, sales, Thresholds(low=2, medium=5))
        unified = row_for(fridge, sales, Thresholds(low=5, medium=10))

        self.assertEqual(canonical.total_sold, 5)
        self.assertEqual(canonical.current_stock, 5)
        self.assertEqual(canonical.stock_status, StockStatus.MEDIUM_STOCK)
        self.assertEqual(unified.stock_status, StockStatus.LOW_STOCK)
        self.assertEqual(canonical.sales_breakdown, {'cashBills': 3, 'creditBills': 2, 'manualEntries': 0})

    def test_oversold_clamps_to_zero_with_critical_alert(self):
        row = row_for(product('P1', 'Fridge', quantity=0), [sale(code='P1', quantity=4)])

        self.assertEqual(row.current_stock, 0)
        self.assertEqual(row.stock_status, StockStatus.OUT_OF_STOCK)
        self.assertTrue(row.has_alert(AlertType.CRITICAL))

    def test_velocity_uses_trailing_window(self):
        sales = [
            sale(code='P1', quantity=6, sold_date=NOW - timedelta(days=10)),
            sale(code='P1', quantity=100, sold_date=NOW - timedelta(days=40)),
            sale(code='P1', quantity=50),
        ]

        self.assertEqual(sales_velocity(sales, 30, NOW), 0.2)
        self.assertEqual(sales_velocity([], 30, NOW), 0.0)

    def test_days_of_stock(self):
        self.assertEqual(days_of_stock(6, 0.5), 12)
        self.assertEqual(days_of_stock(0, 0), INDEFINITE_DAYS)

    def test_rapid_depletion_alert(self):
        recent = [sale(code='P1', quantity=8, invoice='CB-1', sold_date=NOW - timedelta(days=2))]

        row = row_for(product('P1', 'Fridge', quantity=10), recent)

        self.assertEqual(row.current_stock, 2)
        self.assertEqual(row.sales_velocity, 0.27)
        self.assertEqual(row.days_of_stock, 7)
        self.assertTrue(row.has_alert(AlertType.LOW_STOCK))
        self.assertTrue(row.has_alert(AlertType.RAPID_DEPLETION))

    def test_no_velocity_means_no_rapid_depletion(self):
        row = row_for(product('P1', 'Fridge', quantity=3), [])

        self.assertEqual(row.days_of_stock, INDEFINITE_DAYS)
        self.assertEqual(row.alerts, [])

    def test_summary_counts(self):
        rows = [
            row_for(product('P1', 'Fridge', quantity=0, unit_price=10), []),
            row_for(product('P2', 'Oven', quantity=2, unit_price=5), []),
            row_for(product('P3', 'Fan', quantity=20, unit_price=1), []),
        ]

        summary = summarize(rows)

        self.assertEqual(summary['totalProducts'], 3)
        self.assertEqual(summary['outOfStock'], 1)
        self.assertEqual(summary['lowStock'], 1)
        self.assertEqual(summary['goodStock'], 1)
        self.assertEqual(summary['totalAlerts'], 2)
        self.assertEqual(summary['totalValueAtRisk'], 10.0)


@override_settings(INVENTORY_CONFIG=SYNC_INVENTORY)
class AnalyzeInventoryTestCase(TestCase):

    def setUp(self):
        self.store = DocumentStore()
        self.store.create('products', {'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 10, 'unitPrice': 100})
        self.store.create('products', {'itemCode': 'P2', 'itemName': 'Oven', 'quantity': 0, 'unitPrice': 50})
        self.store.create('cashbills', {
            'invoiceNumber': 'CB-1',
            'billDate': (NOW - timedelta(days=3)).isoformat(),
            'items': [{'code': 'P1', 'itemname': 'Fridge', 'quantity': 3, 'rate': 100}],
        })
        self.store.create('creditbills', {
            'invoiceNumber': 'CR-1',
            'items': [{'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': '2'}],
        })
        # Manual copy of the cash bill line; must not be counted twice
        self.store.create('soldProducts', {
            'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 3,
            'source': 'CashBill', 'invoiceNumber': 'CB-1',
        })

    def _emitter(self, notifier=None):
        return AlertEmitter(recipient='ops@example.com', notifier=notifier, send_emails=True)

    @patch('inventory.tasks.send_low_stock_alert.delay')
    def test_reconciles_catalog_against_all_sources(self, mock_delay):
        analysis = analyze_inventory(Thresholds(low=2, medium=5), emitter=self._emitter(), now=NOW)
        rows = {row.item_code: row for row in analysis.rows}

        self.assertEqual(rows['P1'].total_sold, 5)
        self.assertEqual(rows['P1'].current_stock, 5)
        self.assertEqual(rows['P1'].stock_status, StockStatus.MEDIUM_STOCK)
        self.assertEqual(rows['P2'].stock_status, StockStatus.OUT_OF_STOCK)
        self.assertEqual(analysis.sales.failed_sources, [])

        data = analysis.to_dict()
        self.assertEqual(data['summary']['outOfStock'], 1)
        self.assertEqual([a['itemCode'] for a in data['criticalAlerts']], ['P2'])
        self.assertEqual(data['thresholds'], {'low': 2, 'medium': 5})
        mock_delay.assert_called_once()
        self.assertEqual(mock_delay.call_args[0][1]['itemCode'], 'P2')

    @patch('inventory.tasks.send_low_stock_alert.delay')
    def test_email_failure_does_not_abort_analysis(self, mock_delay):
        mock_delay.side_effect = ConnectionError('broker down')
        notifier = MagicMock()

        analysis = analyze_inventory(emitter=self._emitter(notifier), now=NOW)

        self.assertEqual(analysis.notifications['emailsFailed'], 1)
        self.assertEqual(analysis.notifications['eventsPublished'], 1)
        event = notifier.publish.call_args[0][0]
        self.assertEqual(event['itemCode'], 'P2')
        self.assertEqual(event['stockStatus'], 'OUT_OF_STOCK')

    def test_catalog_failure_is_fatal(self):
        store = FakeStore(failing={'products'})

        with self.assertRaises(CatalogUnavailableError):
            analyze_inventory(store=store, emitter=AlertEmitter(send_emails=False))

    def test_unified_sales_removes_duplicates(self):
        result = get_unified_sales()

        self.assertEqual(result['summary']['totalItems'], 2)
        self.assertEqual(result['summary']['duplicatesRemoved'], 1)
        self.assertEqual(result['summary']['bySource']['CashBill'], 1)


class NotificationTestCase(SimpleTestCase):

    def _alerting_row(self):
        return row_for(product('P9', 'Heater', quantity=0), [])

    @patch('inventory.tasks.send_low_stock_alert.delay')
    def test_emails_only_alerting_rows(self, mock_delay):
        rows = [self._alerting_row(), row_for(product('P1', 'Fridge', quantity=50), [])]

        stats = AlertEmitter(recipient='ops@example.com', send_emails=True).emit(rows, min_stock=2)

        self.assertEqual(stats['emailsQueued'], 1)
        recipient, item, message = mock_delay.call_args[0]
        self.assertEqual(recipient, 'ops@example.com')
        self.assertEqual(item, {'itemCode': 'P9', 'itemName': 'Heater', 'currentStock': 0, 'minStock': 2})
        self.assertIn('Out of stock', message)

    @patch('inventory.tasks.send_low_stock_alert.delay')
    def test_no_recipient_skips_email(self, mock_delay):
        AlertEmitter(recipient='', send_emails=True).emit([self._alerting_row()])
        mock_delay.assert_not_called()

    def test_notifier_failure_is_isolated(self):
        notifier = MagicMock()
        notifier.publish.side_effect = RuntimeError('socket closed')

        stats = AlertEmitter(recipient='', notifier=notifier, send_emails=False).emit([self._alerting_row()])

        self.assertEqual(stats['eventsPublished'], 0)

    def test_broadcaster_publishes_json(self):
        client = MagicMock()
        broadcaster = RedisStockEventBroadcaster(channel='stock-alert', client_factory=lambda: client)

        broadcaster.publish(stock_event(self._alerting_row()))

        channel, payload = client.publish.call_args[0]
        self.assertEqual(channel, 'stock-alert')
        self.assertIn('"itemCode": "P9"', payload)

    def test_broadcaster_skips_without_redis(self):
        RedisStockEventBroadcaster(channel='stock-alert', client_factory=lambda: None).publish({'itemCode': 'P9'})


class LowStockEmailTaskTestCase(SimpleTestCase):

    def test_sends_html_email(self):
        result = send_low_stock_alert(
            'ops@example.com',
            {'itemCode': 'P9', 'itemName': 'Heater <2kW>', 'currentStock': 0, 'minStock': 2},
        )

        self.assertEqual(result['status'], 'sent')
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['ops@example.com'])
        self.assertIn('P9', message.subject)
        html, mimetype = message.alternatives[0]
        self.assertEqual(mimetype, 'text/html')
        self.assertIn('Heater &lt;2kW&gt;', html)

    @patch('inventory.tasks.send_mail', side_effect=SMTPException('relay refused'))
    def test_smtp_failure_is_reported(self, mock_send):
        result = send_low_stock_alert('ops@example.com', {'itemCode': 'P9'})

        self.assertEqual(result['status'], 'error')


class LowStockPdfTestCase(SimpleTestCase):

    def test_builds_pdf(self):
        pdf = build_low_stock_pdf([product('P1', 'Fridge', quantity=0), product('P2', 'Oven', quantity=3)], 5)
        self.assertTrue(pdf.startswith(b'%PDF'))

    def test_empty_report_is_valid(self):
        self.assertTrue(build_low_stock_pdf([], 5).startswith(b'%PDF'))


@override_settings(INVENTORY_CONFIG={**SYNC_INVENTORY, 'ALERT_RECIPIENT': 'ops@example.com', 'ENABLE_EMAIL_ALERTS': True})
class CatalogMaintenanceTestCase(TestCase):

    def setUp(self):
        self.store = DocumentStore()
        self.fridge = self.store.create('products', {'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 6})

    def test_restock_existing_product(self):
        updated = restock_product('P1', 4, unit_price=120.0)

        self.assertEqual(updated['quantity'], 10)
        self.assertEqual(updated['unitPrice'], 120.0)

    def test_restock_unknown_code_creates_product(self):
        created = restock_product('P7', 3, item_name='Kettle')

        self.assertEqual(created['quantity'], 3)
        self.assertEqual(len(self.store.get_where('products', 'itemCode', 'P7')), 1)

    def _interleave(self, action):
        """Run ``action`` once, right after the first itemCode lookup returns."""
        lookup = self.store.get_where
        state = {'ran': False}

        def lookup_then_act(*args, **kwargs):
            found = lookup(*args, **kwargs)
            if not state['ran']:
                state['ran'] = True
                action()
            return found

        return patch.object(self.store, 'get_where', side_effect=lookup_then_act)

    def test_overlapping_restocks_both_apply(self):
        with self._interleave(lambda: restock_product('P1', 5, store=self.store)):
            restock_product('P1', 3, store=self.store)

        self.assertEqual(self.store.get_by_id('products', self.fridge['id'])['quantity'], 14)

    @patch('inventory.tasks.send_low_stock_alert.delay')
    def test_manual_sale_overlapping_restock_keeps_both(self, mock_delay):
        with self._interleave(lambda: restock_product('P1', 10, store=self.store)):
            record_sold_product({'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 2}, store=self.store)

        self.assertEqual(self.store.get_by_id('products', self.fridge['id'])['quantity'], 14)
        mock_delay.assert_not_called()

    def test_update_product_rejects_code_of_another_product(self):
        self.store.create('products', {'itemCode': 'P2', 'itemName': 'Oven', 'quantity': 1})

        with self.assertRaises(ProductValidationError):
            update_product(self.fridge['id'], {'itemCode': 'P2'})

        updated = update_product(self.fridge['id'], {'itemCode': ' P1 ', 'itemName': 'Fridge XL'})
        self.assertEqual(updated['itemCode'], 'P1')
        self.assertEqual(updated['itemName'], 'Fridge XL')

    def test_create_products_rejects_duplicate_codes(self):
        with self.assertRaises(ProductValidationError):
            create_products([{'itemCode': 'P1', 'itemName': 'Again', 'unitPrice': 10}])
        with self.assertRaises(ProductValidationError):
            create_products([
                {'itemCode': 'P8', 'itemName': 'A', 'unitPrice': 10},
                {'itemCode': 'P8', 'itemName': 'B', 'unitPrice': 10},
            ])

    @patch('inventory.tasks.send_low_stock_alert.delay')
    def test_manual_sale_decrements_and_alerts(self, mock_delay):
        sold = record_sold_product({'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 2}, created_by='u-1')

        self.assertEqual(sold['source'], 'ManualEntry')
        self.assertEqual(self.store.get_by_id('products', self.fridge['id'])['quantity'], 4)
        mock_delay.assert_called_once()
        self.assertEqual(mock_delay.call_args[0][1]['currentStock'], 4)

    @patch('inventory.tasks.send_low_stock_alert.delay')
    def test_manual_sale_without_decrement(self, mock_delay):
        with override_settings(INVENTORY_CONFIG={**SYNC_INVENTORY, 'DECREMENT_ON_MANUAL_SALE': False}):
            record_sold_product({'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 2})

        self.assertEqual(self.store.get_by_id('products', self.fridge['id'])['quantity'], 6)
        mock_delay.assert_not_called()

    @patch('inventory.tasks.send_low_stock_alert.delay')
    def test_low_stock_levels(self, mock_delay):
        self.store.create('products', {'itemCode': 'P2', 'itemName': 'Oven', 'quantity': 2})
        self.store.create('products', {'itemCode': 'P3', 'itemName': 'Fan', 'quantity': 0})

        levels = get_low_stock_levels(threshold=6)

        self.assertEqual([p['itemCode'] for p in levels['levelOne']], ['P1'])
        self.assertEqual(sorted(p['itemCode'] for p in levels['levelTwo']), ['P2', 'P3'])
        self.assertEqual([p['itemCode'] for p in levels['noStock']], ['P3'])
        self.assertEqual(mock_delay.call_count, 2)

    def test_inventory_with_sales_totals(self):
        self.store.create('soldProducts', {'itemCode': 'P1', 'quantity': 3, 'soldDate': '2024-06-01T00:00:00+00:00'})
        self.store.create('productReturns', {'itemCode': 'P1', 'quantity': 1, 'returnDate': '2024-06-02T00:00:00+00:00'})

        listing = get_inventory_with_sales()

        self.assertEqual(listing[0]['totalSold'], 3)
        self.assertEqual(listing[0]['totalReturns'], 1)
        self.assertEqual(listing[0]['netSold'], 2)
        self.assertEqual(listing[0]['lastSold'], '2024-06-01T00:00:00+00:00')


@override_settings(RATE_LIMIT_ENABLED=False, INVENTORY_CONFIG=SYNC_INVENTORY)
class InventoryAPITestCase(TestCase):

    def setUp(self):
        self.store = DocumentStore()
        self.store.create('users', {'role': 'staff', 'isActive': True}, doc_id='staff-1')
        self.store.create('users', {'role': 'admin', 'department': 'Purchase', 'isActive': True}, doc_id='buyer-1')
        self.fridge = self.store.create('products', {'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 10, 'unitPrice': 100})
        self.store.create('cashbills', {'invoiceNumber': 'CB-1', 'items': [{'code': 'P1', 'quantity': 3}]})
        self.store.create('creditbills', {'invoiceNumber': 'CR-1', 'items': [{'code': 'P1', 'quantity': 2}]})

        patcher = patch('core.authentication.verify_token')
        self.mock_verify = patcher.start()
        self.addCleanup(patcher.stop)
        self.login('staff-1')
        self.client = APIClient()

    def login(self, uid):
        self.mock_verify.return_value = {'uid': uid}

    def get(self, url, **params):
        return self.client.get(url, params, HTTP_AUTHORIZATION='Bearer t')

    def post(self, url, data):
        return self.client.post(url, data, format='json', HTTP_AUTHORIZATION='Bearer t')

    def put(self, url, data):
        return self.client.put(url, data, format='json', HTTP_AUTHORIZATION='Bearer t')

    def delete(self, url):
        return self.client.delete(url, HTTP_AUTHORIZATION='Bearer t')

    def test_analysis_uses_canonical_thresholds(self):
        response = self.get('/api/inventory/analysis/')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['success'])
        row = response.data['data']['inventoryAnalysis'][0]
        self.assertEqual(row['currentStock'], 5)
        self.assertEqual(row['stockStatus'], 'MEDIUM_STOCK')

    def test_unified_analysis_uses_alternate_thresholds(self):
        response = self.get('/api/inventory/unified-analysis/')

        self.assertEqual(response.data['data']['thresholds'], {'low': 5, 'medium': 10})
        self.assertEqual(response.data['data']['inventoryAnalysis'][0]['stockStatus'], 'LOW_STOCK')

    def test_thresholds_from_query(self):
        response = self.get('/api/inventory/analysis/', low=5, medium=10)

        self.assertEqual(response.data['data']['inventoryAnalysis'][0]['stockStatus'], 'LOW_STOCK')

    def test_invalid_thresholds_rejected(self):
        response = self.get('/api/inventory/analysis/', low=9, medium=3)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'VALIDATION_ERROR')

    def test_catalog_failure_returns_envelope(self):
        with patch.object(DocumentStore, 'get_all', side_effect=DocumentStoreError('store offline')):
            response = self.get('/api/inventory/analysis/')

        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['message'], 'Failed to analyze inventory')
        self.assertIn('store offline', response.data['error'])

    def test_restock_requires_purchase_admin(self):
        response = self.post('/api/inventory/restock/', {'itemCode': 'P1', 'quantity': 5})
        self.assertEqual(response.status_code, 403)

        self.login('buyer-1')
        response = self.post('/api/inventory/restock/', {'itemCode': 'P1', 'quantity': 5})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['quantity'], 15)

    def test_bulk_create_validates_payload(self):
        self.login('buyer-1')

        response = self.post('/api/products/bulk/', {'products': [{'itemCode': 'P5', 'itemName': 'Oven', 'unitPrice': 0}]})
        self.assertEqual(response.status_code, 400)

        response = self.post('/api/products/bulk/', {'products': [
            {'itemCode': 'P5', 'itemName': 'Oven', 'unitPrice': 900, 'quantity': 4, 'department': 'Sales'},
        ]})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['data'][0]['department'], 'Sales')
        self.assertEqual(response.data['data'][0]['createdBy'], 'buyer-1')

    def test_product_detail_not_found(self):
        response = self.get('/api/products/missing/')

        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.data['success'])

    def test_record_and_list_sold_products(self):
        response = self.post('/api/sold-products/', {
            'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 2, 'unitPrice': 100, 'gst': 18,
        })
        self.assertEqual(response.status_code, 201)

        listing = self.get('/api/sold-products/').data['data']
        self.assertEqual(listing[0]['totalAmount'], 200.0)
        self.assertEqual(listing[0]['gstAmount'], 36.0)

    def test_low_stock_pdf(self):
        response = self.client.get('/api/inventory/alerts/pdf/', HTTP_AUTHORIZATION='Bearer t')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertIn('low_stock_report.pdf', response['Content-Disposition'])
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_connection_check(self):
        response = self.get('/api/inventory/connection/')

        self.assertEqual(response.data['data']['itemCount'], 1)

    def test_product_list(self):
        response = self.get('/api/products/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([p['itemCode'] for p in response.data['data']], ['P1'])

    def test_product_update_requires_purchase_admin(self):
        url = f"/api/products/{self.fridge['id']}/"

        response = self.put(url, {'quantity': 3})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'ROLE_REQUIRED')

        self.login('buyer-1')
        response = self.put(url, {'quantity': 3})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['quantity'], 3)
        self.assertEqual(response.data['data']['itemName'], 'Fridge')

    def test_product_update_rejects_taken_code_and_empty_body(self):
        self.store.create('products', {'itemCode': 'P2', 'itemName': 'Oven', 'quantity': 1})
        self.login('buyer-1')
        url = f"/api/products/{self.fridge['id']}/"

        self.assertEqual(self.put(url, {'itemCode': 'P2'}).status_code, 400)
        self.assertEqual(self.put(url, {}).status_code, 400)
        self.assertEqual(self.put('/api/products/missing/', {'quantity': 1}).status_code, 404)

    def test_product_delete_requires_purchase_admin(self):
        url = f"/api/products/{self.fridge['id']}/"

        self.assertEqual(self.delete(url).status_code, 403)

        self.login('buyer-1')
        self.assertEqual(self.delete(url).status_code, 200)
        self.assertEqual(self.get(url).status_code, 404)
        self.assertEqual(self.delete(url).status_code, 404)

    def test_sold_product_partial_update(self):
        sold = self.store.create('soldProducts', {'itemCode': 'P1', 'itemName': 'Fridge', 'quantity': 1})
        url = f"/api/sold-products/{sold['id']}/"

        response = self.put(url, {'quantity': 4})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['quantity'], 4)
        self.assertEqual(response.data['data']['itemName'], 'Fridge')

        response = self.put(url, {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'VALIDATION_ERROR')

    def test_sold_product_update_unknown_id(self):
        response = self.put('/api/sold-products/missing/', {'quantity': 4})

        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.data['success'])

    def test_unified_sales(self):
        response = self.get('/api/inventory/unified-sales/')

        self.assertEqual(response.status_code, 200)
        summary = response.data['data']['summary']
        self.assertEqual(summary['totalItems'], 2)
        self.assertEqual(summary['totalQuantity'], 5)
        self.assertEqual(summary['bySource']['CashBill'], 1)
        self.assertEqual(summary['bySource']['CreditBill'], 1)
        self.assertEqual(summary['failedSources'], [])

    def test_inventory_with_sales(self):
        self.store.create('soldProducts', {'itemCode': 'P1', 'quantity': 2, 'soldDate': '2024-06-01T00:00:00+00:00'})

        response = self.get('/api/inventory/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data'][0]['itemCode'], 'P1')
        self.assertEqual(response.data['data'][0]['totalSold'], 2)

    def test_low_stock_alert_levels(self):
        response = self.get('/api/inventory/alerts/', threshold=12)

        self.assertEqual(response.status_code, 200)
        data = response.data['data']
        self.assertEqual([p['itemCode'] for p in data['levelOne']], ['P1'])
        self.assertEqual(data['levelTwo'], [])
        self.assertEqual(data['noStock'], [])
        self.assertEqual(data['emailsQueued'], 0)

    def test_health_needs_no_token(self):
        self.assertEqual(self.client.get('/health/').status_code, 200)

"""
Inventory Service Layer.

Reconciliation pipeline:
1. Load the product catalog (fatal if unavailable)
2. Load and normalize sales from all sources (each source degradable)
3. Attribute sales to products with the match cascade, then deduplicate
4. Derive stock level, velocity and alerts per product
5. Emit low-stock notifications for alerting products

The rest of the module covers catalog maintenance: restocking, bulk product
creation, product updates and manual sold-product records.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from django.utils import timezone

from documents.store import DocumentNotFound, DocumentStore, DocumentStoreError, get_document_store
from .conf import inventory_setting
from .matching import deduplicate, deduplicate_matches, find_matches
from .notifications import AlertEmitter, get_default_notifier, queue_low_stock_email
from .records import (
    PRODUCT_RETURNS,
    PRODUCTS,
    SOLD_PRODUCTS,
    AlertType,
    InventoryAnalysisRow,
    Product,
    SaleSource,
    Thresholds,
    to_float,
    to_int,
    to_text,
)
from .sales import SalesLoadResult, load_sold_items
from .stock import alert_entries, analyze_product, summarize

logger = logging.getLogger(__name__)


class CatalogUnavailableError(Exception):
    """Raised when the product catalog cannot be read."""
    pass


class ProductValidationError(Exception):
    """Raised when product input fails validation."""
    pass


class ProductNotFoundError(Exception):
    """Raised when a product or sold product id does not exist."""
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection} {doc_id} not found")


# =============================================================================
# Reconciliation
# =============================================================================

@dataclass
class InventoryAnalysis:
    rows: List[InventoryAnalysisRow]
    sales: SalesLoadResult
    thresholds: Thresholds
    notifications: Dict[str, int] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=timezone.now)

    @property
    def summary(self) -> Dict[str, Any]:
        summary = summarize(self.rows)
        summary['salesSources'] = self.sales.summary()
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'inventoryAnalysis': [row.to_dict() for row in self.rows],
            'summary': self.summary,
            'criticalAlerts': alert_entries(self.rows, AlertType.CRITICAL),
            'lowStockAlerts': alert_entries(self.rows, AlertType.LOW_STOCK),
            'rapidDepletionAlerts': alert_entries(self.rows, AlertType.RAPID_DEPLETION),
            'thresholds': self.thresholds.to_dict(),
            'notifications': dict(self.notifications),
            'lastUpdated': self.generated_at.isoformat(),
        }


def load_catalog(store: Optional[DocumentStore] = None) -> List[Product]:
    """
    Read all products.

    Raises:
        CatalogUnavailableError: If the products collection cannot be read
    """
    store = store or get_document_store()
    try:
        documents = store.get_all(PRODUCTS, 'createdAt', 'desc')
    except DocumentStoreError as e:
        logger.error(f"Product catalog unavailable: {e}")
        raise CatalogUnavailableError(str(e)) from e
    return [Product.from_document(doc) for doc in documents]


def reconcile(
    products: List[Product],
    sales: SalesLoadResult,
    thresholds: Thresholds,
    now: Optional[datetime] = None,
) -> List[InventoryAnalysisRow]:
    """One analysis row per product, in catalog order."""
    window_days = inventory_setting('VELOCITY_WINDOW_DAYS')
    rapid_days = inventory_setting('RAPID_DEPLETION_DAYS')
    now = now or timezone.now()

    rows = []
    for product in products:
        matches = deduplicate_matches(find_matches(product, sales.items))
        rows.append(analyze_product(product, matches, thresholds, window_days, rapid_days, now))
    return rows


def analyze_inventory(
    thresholds: Optional[Thresholds] = None,
    store: Optional[DocumentStore] = None,
    emitter: Optional[AlertEmitter] = None,
    now: Optional[datetime] = None,
) -> InventoryAnalysis:
    """
    Reconcile the catalog against all sales.

    Args:
        thresholds: Stock status cut-offs (defaults to the canonical THRESHOLDS)
        store: Document store (defaults to the project store)
        emitter: Alert emitter; defaults to email plus the configured live notifier
        now: Reference time for sales velocity

    Raises:
        CatalogUnavailableError: If the catalog cannot be read
    """
    store = store or get_document_store()
    thresholds = thresholds or Thresholds.from_config(inventory_setting('THRESHOLDS'))

    products = load_catalog(store)
    sales = load_sold_items(store)
    rows = reconcile(products, sales, thresholds, now)

    if emitter is None:
        emitter = AlertEmitter(notifier=get_default_notifier())
    notifications = emitter.emit(rows, min_stock=thresholds.low)

    analysis = InventoryAnalysis(rows=rows, sales=sales, thresholds=thresholds, notifications=notifications)
    logger.info(
        f"Inventory analysis: {len(rows)} products, {len(sales.items)} sold items, "
        f"thresholds {thresholds.to_dict()}"
    )
    return analysis


def get_unified_sales(store: Optional[DocumentStore] = None) -> Dict[str, Any]:
    """Every sold item from every source, normalized and deduplicated, newest first."""
    sales = load_sold_items(store)
    unique = deduplicate(item for item in sales.items if not item.is_blank)
    unique.sort(
        key=lambda item: item.sold_date.timestamp() if item.sold_date else float('-inf'),
        reverse=True,
    )

    by_source = {source.value: 0 for source in SaleSource}
    for item in unique:
        by_source[item.source] = by_source.get(item.source, 0) + 1

    return {
        'soldProducts': [item.to_dict() for item in unique],
        'summary': {
            'totalItems': len(unique),
            'duplicatesRemoved': len(sales.items) - len(unique),
            'totalQuantity': sum(item.quantity for item in unique),
            'totalValue': round(sum(item.quantity * item.unit_price for item in unique), 2),
            'bySource': by_source,
            'failedSources': list(sales.failed_sources),
        },
    }


def get_inventory_with_sales(store: Optional[DocumentStore] = None) -> List[Dict[str, Any]]:
    """
    Catalog records with raw manual sales and return totals by exact item code.

    Unlike the reconciliation this reads only manual sold-product entries and
    product returns, without matching or deduplication.
    """
    store = store or get_document_store()
    try:
        products = store.get_all(PRODUCTS, 'itemName', 'asc')
    except DocumentStoreError as e:
        raise CatalogUnavailableError(str(e)) from e
    sold = store.get_all(SOLD_PRODUCTS, 'soldDate', 'desc')
    returns = store.get_all(PRODUCT_RETURNS, 'returnDate', 'desc')

    listing = []
    for product in products:
        code = product.get('itemCode')
        item_sales = [sale for sale in sold if sale.get('itemCode') == code]
        item_returns = [ret for ret in returns if ret.get('itemCode') == code]
        total_sold = sum(to_int(sale.get('quantity')) for sale in item_sales)
        total_returns = sum(to_int(ret.get('quantity')) for ret in item_returns)
        listing.append({
            **product,
            'totalSold': total_sold,
            'totalReturns': total_returns,
            'netSold': total_sold - total_returns,
            'lastSold': item_sales[0].get('soldDate') if item_sales else None,
            'lastReturn': item_returns[0].get('returnDate') if item_returns else None,
            'salesCount': len(item_sales),
            'returnsCount': len(item_returns),
        })
    return listing


def get_low_stock_levels(
    threshold: int,
    store: Optional[DocumentStore] = None,
    send_emails: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Bucket catalog records by raw quantity.

    levelOne: critical < quantity <= threshold
    levelTwo: quantity <= critical (an email is queued for each)
    noStock:  quantity <= 0
    """
    store = store or get_document_store()
    critical = Thresholds.from_config(inventory_setting('THRESHOLDS')).low
    try:
        products = store.get_all(PRODUCTS, 'itemName', 'asc')
    except DocumentStoreError as e:
        raise CatalogUnavailableError(str(e)) from e

    level_one, level_two, no_stock = [], [], []
    for product in products:
        quantity = to_int(product.get('quantity'))
        if critical < quantity <= threshold:
            level_one.append(product)
        if quantity <= critical:
            level_two.append(product)
        if quantity <= 0:
            no_stock.append(product)

    send_emails = send_emails if send_emails is not None else inventory_setting('ENABLE_EMAIL_ALERTS')
    recipient = inventory_setting('ALERT_RECIPIENT')
    queued = 0
    if send_emails and recipient:
        for product in level_two:
            item = {
                'itemCode': product.get('itemCode'),
                'itemName': product.get('itemName'),
                'currentStock': to_int(product.get('quantity')),
                'minStock': critical,
            }
            queued += queue_low_stock_email(recipient, item)

    return {'levelOne': level_one, 'levelTwo': level_two, 'noStock': no_stock, 'emailsQueued': queued}


def low_stock_products(threshold: int, store: Optional[DocumentStore] = None) -> List[Product]:
    """Products whose catalog quantity is at or below ``threshold``, for the PDF report."""
    return [product for product in load_catalog(store) if product.quantity <= threshold]


def check_connection(store: Optional[DocumentStore] = None) -> Dict[str, Any]:
    products = load_catalog(store)
    return {'itemCount': len(products), 'timestamp': timezone.now().isoformat()}


# =============================================================================
# Catalog maintenance
# =============================================================================

def restock_product(
    item_code: str,
    quantity: int,
    item_name: str = '',
    unit_price: Optional[float] = None,
    gst: Optional[float] = None,
    store: Optional[DocumentStore] = None,
) -> Dict[str, Any]:
    """Add ``quantity`` to the product with ``item_code``, creating it if absent."""
    store = store or get_document_store()
    now = timezone.now().isoformat()
    existing = store.get_where(PRODUCTS, 'itemCode', item_code)

    if existing:
        product = existing[0]
        changes = {'lastUpdated': now}
        if unit_price is not None:
            changes['unitPrice'] = unit_price
        if gst is not None:
            changes['gst'] = gst
        updated = store.increment(PRODUCTS, product['id'], 'quantity', quantity, extra=changes)
        logger.info(f"Restocked {item_code}: +{quantity} -> {updated['quantity']}")
        return updated

    created = store.create(PRODUCTS, {
        'itemCode': item_code,
        'itemName': item_name or item_code,
        'quantity': quantity,
        'unitPrice': unit_price if unit_price is not None else 0,
        'gst': gst if gst is not None else 0,
        'lastUpdated': now,
    })
    logger.info(f"Restock created new product {item_code} with quantity {quantity}")
    return created


def list_products(store: Optional[DocumentStore] = None) -> List[Dict[str, Any]]:
    store = store or get_document_store()
    try:
        return store.get_all(PRODUCTS, 'createdAt', 'desc')
    except DocumentStoreError as e:
        raise CatalogUnavailableError(str(e)) from e


def get_product(product_id: str, store: Optional[DocumentStore] = None) -> Dict[str, Any]:
    store = store or get_document_store()
    product = store.get_by_id(PRODUCTS, product_id)
    if product is None:
        raise ProductNotFoundError(PRODUCTS, product_id)
    return product


def create_products(
    products: List[Dict[str, Any]],
    created_by: Optional[str] = None,
    store: Optional[DocumentStore] = None,
) -> List[Dict[str, Any]]:
    """
    Create catalog products from validated input.

    Item codes must be unique within the batch and against the catalog.

    Raises:
        ProductValidationError: If the batch is empty or repeats an item code
    """
    store = store or get_document_store()
    if not products:
        raise ProductValidationError("Products must be a non-empty array")

    seen = set()
    for index, product in enumerate(products):
        code = product['itemCode'].strip()
        if code in seen:
            raise ProductValidationError(f"Duplicate itemCode {code!r} in product at index {index}")
        if store.get_where(PRODUCTS, 'itemCode', code):
            raise ProductValidationError(f"Product with itemCode {code!r} already exists (index {index})")
        seen.add(code)

    created = []
    for product in products:
        created.append(store.create(PRODUCTS, {
            'itemCode': product['itemCode'].strip(),
            'itemName': product['itemName'].strip(),
            'hsn': (product.get('hsn') or '').strip(),
            'gst': product.get('gst', 0),
            'unitPrice': product['unitPrice'],
            'quantity': product.get('quantity', 0),
            'department': product.get('department') or 'General',
            'createdBy': created_by,
        }))

    logger.info(f"Created {len(created)} products")
    return created


def update_product(product_id: str, changes: Dict[str, Any], store: Optional[DocumentStore] = None) -> Dict[str, Any]:
    """
    Merge validated changes into a product.

    Raises:
        ProductValidationError: If a new itemCode is already used by another product
        ProductNotFoundError: If the product does not exist
    """
    store = store or get_document_store()
    if 'itemCode' in changes:
        code = changes['itemCode'].strip()
        if any(other['id'] != product_id for other in store.get_where(PRODUCTS, 'itemCode', code)):
            raise ProductValidationError(f"Product with itemCode {code!r} already exists")
        changes = {**changes, 'itemCode': code}
    try:
        return store.update(PRODUCTS, product_id, {**changes, 'lastUpdated': timezone.now().isoformat()})
    except DocumentNotFound as e:
        raise ProductNotFoundError(PRODUCTS, product_id) from e


def delete_product(product_id: str, store: Optional[DocumentStore] = None) -> None:
    store = store or get_document_store()
    try:
        store.delete(PRODUCTS, product_id)
    except DocumentNotFound as e:
        raise ProductNotFoundError(PRODUCTS, product_id) from e


# =============================================================================
# Manual sold-product records
# =============================================================================

def list_sold_products(store: Optional[DocumentStore] = None) -> List[Dict[str, Any]]:
    """Manual sold entries, newest first, with line totals."""
    store = store or get_document_store()
    listing = []
    for record in store.get_all(SOLD_PRODUCTS, 'soldDate', 'desc'):
        total = to_int(record.get('quantity')) * to_float(record.get('unitPrice'))
        listing.append({
            **record,
            'totalAmount': round(total, 2),
            'gstAmount': round(total * to_float(record.get('gst')) / 100, 2),
        })
    return listing


def record_sold_product(
    data: Dict[str, Any],
    created_by: Optional[str] = None,
    store: Optional[DocumentStore] = None,
) -> Dict[str, Any]:
    """
    Store a manual sale and, when configured, take it off the catalog quantity.

    With DECREMENT_ON_MANUAL_SALE enabled the reconciliation subtracts this
    sale again from the already reduced catalog quantity.
    """
    store = store or get_document_store()
    record = {
        **data,
        'source': data.get('source') or SaleSource.MANUAL_ENTRY.value,
        'soldDate': data.get('soldDate') or timezone.now().isoformat(),
        'createdBy': created_by,
    }
    sold = store.create(SOLD_PRODUCTS, record)

    if not inventory_setting('DECREMENT_ON_MANUAL_SALE'):
        return sold

    item_code = to_text(data.get('itemCode'))
    matches = store.get_where(PRODUCTS, 'itemCode', item_code) if item_code else []
    if not matches:
        return sold

    product = store.increment(
        PRODUCTS, matches[0]['id'], 'quantity', -to_int(data.get('quantity')),
        floor=0, extra={'lastUpdated': timezone.now().isoformat()},
    )
    remaining = product['quantity']
    logger.warning(
        f"Catalog quantity for {item_code} decremented to {remaining} by manual sale {sold['id']}; "
        "inventory analysis will subtract this sale again"
    )

    alert_threshold = inventory_setting('LOW_STOCK_ALERT_THRESHOLD')
    recipient = inventory_setting('ALERT_RECIPIENT')
    if remaining <= alert_threshold and recipient and inventory_setting('ENABLE_EMAIL_ALERTS'):
        queue_low_stock_email(recipient, {
            'itemCode': item_code,
            'itemName': product.get('itemName'),
            'currentStock': remaining,
            'minStock': alert_threshold,
        })
    return sold


def update_sold_product(record_id: str, changes: Dict[str, Any], store: Optional[DocumentStore] = None) -> Dict[str, Any]:
    store = store or get_document_store()
    try:
        return store.update(SOLD_PRODUCTS, record_id, changes)
    except DocumentNotFound as e:
        raise ProductNotFoundError(SOLD_PRODUCTS, record_id) from e

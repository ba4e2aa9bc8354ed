"""
Sales Aggregator - loads sales from every source and normalizes them.

Sources:
    - soldProducts: manual sale entries, one document per sold item
    - cashbills / creditbills: bills with an ``items`` array of line items

Each source is fetched independently (concurrently when more than one worker
is configured). A source that fails or times out contributes no items and is
reported in ``failed_sources``; the others still produce a result.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from django.db import connection

from documents.store import DocumentStore, get_document_store
from .conf import inventory_setting
from .records import (
    CASH_BILLS,
    CREDIT_BILLS,
    NO_INVOICE,
    SOLD_PRODUCTS,
    SaleSource,
    SoldItem,
    first_present,
    parse_timestamp,
    to_float,
    to_int,
    to_text,
)

logger = logging.getLogger(__name__)

INVOICE_KEYS = ('invoiceNumber', 'invoiceNo', 'invoice', 'billNumber')


def _manual_source(value: Any) -> str:
    """Manual records copied from bills keep their bill source, so they dedupe against it."""
    compact = to_text(value).replace(' ', '').lower()
    if compact == 'cashbill':
        return SaleSource.CASH_BILL.value
    if compact == 'creditbill':
        return SaleSource.CREDIT_BILL.value
    return SaleSource.MANUAL_ENTRY.value


def _sold_quantity(value: Any) -> int:
    # Returns live in productReturns; a negative sale quantity counts as nothing sold
    return max(0, to_int(value))


def normalize_manual_entry(document: Mapping[str, Any]) -> SoldItem:
    """Map one soldProducts document to a SoldItem (missing fields become defaults)."""
    return SoldItem(
        item_code=to_text(document.get('itemCode')),
        item_name=to_text(document.get('itemName')),
        quantity=_sold_quantity(document.get('quantity')),
        source=_manual_source(document.get('source')),
        invoice=to_text(first_present(document, *INVOICE_KEYS, default=NO_INVOICE)),
        unit_price=to_float(first_present(document, 'unitPrice', 'unitRate', 'rate')),
        sold_date=parse_timestamp(first_present(document, 'soldDate', 'date', 'createdAt')),
        bill_id=to_text(document.get('billId')) or None,
    )


def normalize_bill(document: Mapping[str, Any], source: SaleSource) -> List[SoldItem]:
    """
    Map every line item of a bill to a SoldItem.

    Line item aliases are resolved by the first non-empty value:
    code > itemCode, itemname > itemName, rate > unitPrice.
    """
    items = document.get('items')
    if not isinstance(items, list):
        return []

    invoice = to_text(first_present(document, *INVOICE_KEYS, default=NO_INVOICE))
    sold_date = parse_timestamp(first_present(document, 'billDate', 'date', 'createdAt'))
    bill_id = to_text(first_present(document, 'id', '_id')) or None

    sold_items = []
    for line in items:
        if not isinstance(line, Mapping):
            continue
        sold_items.append(SoldItem(
            item_code=to_text(first_present(line, 'code', 'itemCode', default='')),
            item_name=to_text(first_present(line, 'itemname', 'itemName', default='')),
            quantity=_sold_quantity(line.get('quantity')),
            source=source.value,
            invoice=invoice,
            unit_price=to_float(first_present(line, 'rate', 'unitPrice')),
            sold_date=sold_date,
            bill_id=bill_id,
        ))
    return sold_items


def normalize_manual_entries(documents: Iterable[Mapping[str, Any]]) -> List[SoldItem]:
    return [normalize_manual_entry(doc) for doc in documents if isinstance(doc, Mapping)]


def normalize_cash_bills(documents: Iterable[Mapping[str, Any]]) -> List[SoldItem]:
    return [item for doc in documents if isinstance(doc, Mapping)
            for item in normalize_bill(doc, SaleSource.CASH_BILL)]


def normalize_credit_bills(documents: Iterable[Mapping[str, Any]]) -> List[SoldItem]:
    return [item for doc in documents if isinstance(doc, Mapping)
            for item in normalize_bill(doc, SaleSource.CREDIT_BILL)]


# (collection, normalizer) in aggregation order
SALES_SOURCES: Tuple[Tuple[str, Callable[[Iterable[Mapping]], List[SoldItem]]], ...] = (
    (SOLD_PRODUCTS, normalize_manual_entries),
    (CASH_BILLS, normalize_cash_bills),
    (CREDIT_BILLS, normalize_credit_bills),
)


@dataclass
class SalesLoadResult:
    """All sold items plus per-source bookkeeping."""
    items: List[SoldItem] = field(default_factory=list)
    loaded: Dict[str, int] = field(default_factory=dict)
    failed_sources: List[str] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            'itemsBySource': dict(self.loaded),
            'failedSources': list(self.failed_sources),
            'totalItems': len(self.items),
        }


def _fetch_in_worker(store: DocumentStore, collection: str) -> List[Dict[str, Any]]:
    try:
        return store.get_all(collection)
    finally:
        # Worker threads own their DB connection
        connection.close()


def load_sold_items(
    store: Optional[DocumentStore] = None,
    workers: Optional[int] = None,
    timeout: Optional[float] = None,
) -> SalesLoadResult:
    """
    Load and normalize sales from all sources.

    Args:
        store: Document store to read from (defaults to the project store)
        workers: Concurrent fetches; 1 fetches sequentially in the calling thread
        timeout: Seconds to wait for all sources before treating the rest as failed

    Returns:
        SalesLoadResult; never raises for source failures
    """
    store = store or get_document_store()
    workers = workers if workers is not None else inventory_setting('SOURCE_FETCH_WORKERS')
    timeout = timeout if timeout is not None else inventory_setting('SOURCE_FETCH_TIMEOUT')

    raw: Dict[str, Optional[List[Dict[str, Any]]]] = {}

    if workers <= 1:
        for collection, _ in SALES_SOURCES:
            try:
                raw[collection] = store.get_all(collection)
            except Exception as e:
                logger.warning(f"Sales source {collection} unavailable: {e}")
                raw[collection] = None
    else:
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='sales-source')
        futures = {
            collection: executor.submit(_fetch_in_worker, store, collection)
            for collection, _ in SALES_SOURCES
        }
        deadline = time.monotonic() + timeout
        for collection, future in futures.items():
            try:
                raw[collection] = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeoutError:
                logger.warning(f"Sales source {collection} timed out after {timeout}s")
                raw[collection] = None
            except Exception as e:
                logger.warning(f"Sales source {collection} unavailable: {e}")
                raw[collection] = None
        executor.shutdown(wait=False, cancel_futures=True)

    result = SalesLoadResult()
    for collection, normalizer in SALES_SOURCES:
        documents = raw.get(collection)
        if documents is None:
            result.failed_sources.append(collection)
            result.loaded[collection] = 0
            continue
        items = normalizer(documents)
        result.items.extend(items)
        result.loaded[collection] = len(items)

    logger.info(
        f"Loaded {len(result.items)} sold items "
        f"({', '.join(f'{k}={v}' for k, v in result.loaded.items())})"
    )
    if result.failed_sources:
        logger.warning(f"Analysis is using partial sales data; failed: {result.failed_sources}")
    return result

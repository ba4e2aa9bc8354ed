"""
Inventory value types.

Types:
    - Product: catalog record read from the ``products`` collection
    - SoldItem: one normalized unit of a sale, whatever document it came from
    - Thresholds: stock status cut-offs ({low, medium})
    - Alert / InventoryAnalysisRow: derived reconciliation output

Raw documents are loosely shaped; the coercion helpers here turn them into
strict values and never raise on malformed input.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone as dt_timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

# Collections
PRODUCTS = 'products'
SOLD_PRODUCTS = 'soldProducts'
CASH_BILLS = 'cashbills'
CREDIT_BILLS = 'creditbills'
PRODUCT_RETURNS = 'productReturns'

NO_INVOICE = 'N/A'
INDEFINITE_DAYS = 999


class SaleSource(str, Enum):
    MANUAL_ENTRY = 'ManualEntry'
    CASH_BILL = 'CashBill'
    CREDIT_BILL = 'CreditBill'


class StockStatus(str, Enum):
    OUT_OF_STOCK = 'OUT_OF_STOCK'
    LOW_STOCK = 'LOW_STOCK'
    MEDIUM_STOCK = 'MEDIUM_STOCK'
    GOOD_STOCK = 'GOOD_STOCK'


class AlertType(str, Enum):
    CRITICAL = 'CRITICAL'
    LOW_STOCK = 'LOW_STOCK'
    RAPID_DEPLETION = 'RAPID_DEPLETION'


# =============================================================================
# Coercion helpers
# =============================================================================

def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def first_present(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Value of the first key holding a non-empty value, in priority order."""
    for key in keys:
        value = record.get(key)
        if not is_blank(value):
            return value
    return default


def to_text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


def to_int(value: Any) -> int:
    """Integer part of a number or numeric string; 0 for anything else."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number)


def to_float(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse the timestamp shapes found in documents into an aware datetime.

    Handles datetime/date objects, ISO strings, epoch seconds or milliseconds,
    and serialized store timestamps ({"_seconds": ..., "_nanoseconds": ...}).
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, Mapping):
        seconds = value.get('_seconds', value.get('seconds'))
        if seconds is None:
            return None
        try:
            return datetime.fromtimestamp(to_float(seconds), tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(value).strip()
        try:
            result = parse_datetime(text)
            if result is None:
                parsed_date = parse_date(text[:10])
                if parsed_date is None:
                    return None
                result = datetime(parsed_date.year, parsed_date.month, parsed_date.day)
        except ValueError:
            return None

    if timezone.is_naive(result):
        result = timezone.make_aware(result, dt_timezone.utc)
    return result


# =============================================================================
# Value types
# =============================================================================

@dataclass(frozen=True)
class Thresholds:
    """Stock status cut-offs: LOW_STOCK at or below ``low``, MEDIUM_STOCK at or below ``medium``."""
    low: int = 2
    medium: int = 5

    def __post_init__(self):
        if self.low < 0 or self.medium < 0:
            raise ValueError("Thresholds must be non-negative")
        if self.low > self.medium:
            raise ValueError("Low threshold cannot exceed medium threshold")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'Thresholds':
        return cls(low=int(config.get('low', cls.low)), medium=int(config.get('medium', cls.medium)))

    def to_dict(self) -> Dict[str, int]:
        return {'low': self.low, 'medium': self.medium}


@dataclass(frozen=True)
class Product:
    id: str
    item_code: str
    item_name: str
    quantity: int
    unit_price: float = 0.0
    gst: float = 0.0
    hsn: str = ''
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> 'Product':
        return cls(
            id=to_text(document.get('id')),
            item_code=to_text(document.get('itemCode')),
            item_name=to_text(document.get('itemName')),
            quantity=to_int(document.get('quantity')),
            unit_price=to_float(document.get('unitPrice')),
            gst=to_float(document.get('gst')),
            hsn=to_text(document.get('hsn')),
            created_at=parse_timestamp(document.get('createdAt')),
        )


@dataclass(frozen=True)
class SoldItem:
    item_code: str
    item_name: str
    quantity: int
    source: str
    invoice: str = NO_INVOICE
    unit_price: float = 0.0
    sold_date: Optional[datetime] = None
    bill_id: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        return not self.item_code and not self.item_name

    @property
    def dedup_key(self):
        return (self.item_code, self.item_name, self.quantity, self.source, self.invoice)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'itemCode': self.item_code,
            'itemName': self.item_name,
            'quantity': self.quantity,
            'unitPrice': self.unit_price,
            'totalAmount': round(self.quantity * self.unit_price, 2),
            'source': self.source,
            'invoice': self.invoice,
            'soldDate': self.sold_date.isoformat() if self.sold_date else None,
            'billId': self.bill_id,
        }


@dataclass(frozen=True)
class Alert:
    type: AlertType
    severity: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {'type': self.type.value, 'severity': self.severity, 'message': self.message}


@dataclass
class InventoryAnalysisRow:
    product_id: str
    item_code: str
    item_name: str
    available_quantity: int
    total_sold: int
    current_stock: int
    stock_status: StockStatus
    sales_velocity: float
    days_of_stock: int
    unit_price: float = 0.0
    gst: float = 0.0
    alerts: List[Alert] = field(default_factory=list)
    sales_breakdown: Dict[str, int] = field(default_factory=dict)

    def has_alert(self, alert_type: AlertType) -> bool:
        return any(alert.type == alert_type for alert in self.alerts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'productId': self.product_id,
            'itemCode': self.item_code,
            'itemName': self.item_name,
            'availableQuantity': self.available_quantity,
            'totalSold': self.total_sold,
            'currentStock': self.current_stock,
            'stockStatus': self.stock_status.value,
            'salesVelocity': self.sales_velocity,
            'daysOfStock': self.days_of_stock,
            'unitPrice': self.unit_price,
            'gst': self.gst,
            'alerts': [alert.to_dict() for alert in self.alerts],
            'salesBreakdown': dict(self.sales_breakdown),
        }

"""
Stock Calculator - derives stock level, velocity and alerts per product.
"""
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from django.utils import timezone

from .matching import Match
from .records import (
    INDEFINITE_DAYS,
    Alert,
    AlertType,
    InventoryAnalysisRow,
    Product,
    SaleSource,
    SoldItem,
    StockStatus,
    Thresholds,
)

BREAKDOWN_KEYS = {
    SaleSource.CASH_BILL.value: 'cashBills',
    SaleSource.CREDIT_BILL.value: 'creditBills',
}
MANUAL_BREAKDOWN_KEY = 'manualEntries'


def classify_stock(current_stock: int, thresholds: Thresholds) -> StockStatus:
    if current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if current_stock <= thresholds.low:
        return StockStatus.LOW_STOCK
    if current_stock <= thresholds.medium:
        return StockStatus.MEDIUM_STOCK
    return StockStatus.GOOD_STOCK


def sales_velocity(sales: Iterable[SoldItem], window_days: int, now: Optional[datetime] = None) -> float:
    """Average units sold per day over the trailing window; undated sales are ignored."""
    if window_days <= 0:
        return 0.0
    now = now or timezone.now()
    window_start = now - timedelta(days=window_days)
    recent = sum(
        sale.quantity for sale in sales
        if sale.sold_date is not None and window_start <= sale.sold_date <= now
    )
    return round(recent / window_days, 2)


def days_of_stock(current_stock: int, velocity: float) -> int:
    if velocity <= 0:
        return INDEFINITE_DAYS
    return math.floor(current_stock / velocity)


def build_alerts(
    current_stock: int,
    velocity: float,
    days_left: int,
    thresholds: Thresholds,
    rapid_depletion_days: int,
) -> List[Alert]:
    alerts = []
    if current_stock <= 0:
        alerts.append(Alert(
            AlertType.CRITICAL, 'HIGH',
            'Out of stock - immediate restock required',
        ))
    elif current_stock <= thresholds.low:
        alerts.append(Alert(
            AlertType.LOW_STOCK, 'HIGH',
            f'Critical low stock - only {current_stock} units left',
        ))

    if velocity > 0 and days_left <= rapid_depletion_days:
        alerts.append(Alert(
            AlertType.RAPID_DEPLETION, 'MEDIUM',
            f'Stock will run out in about {days_left} days at current sales rate',
        ))
    return alerts


def sales_breakdown(sales: Iterable[SoldItem]) -> Dict[str, int]:
    breakdown = {'cashBills': 0, 'creditBills': 0, MANUAL_BREAKDOWN_KEY: 0}
    for sale in sales:
        breakdown[BREAKDOWN_KEYS.get(sale.source, MANUAL_BREAKDOWN_KEY)] += sale.quantity
    return breakdown


def analyze_product(
    product: Product,
    matches: Sequence[Match],
    thresholds: Thresholds,
    window_days: int,
    rapid_depletion_days: int,
    now: Optional[datetime] = None,
) -> InventoryAnalysisRow:
    """
    Build the analysis row for one product from its deduplicated matches.

    Current stock never goes below zero, even when more was sold than the
    catalog holds.
    """
    sales = [match.sale for match in matches]
    total_sold = sum(sale.quantity for sale in sales)
    current_stock = max(0, product.quantity - total_sold)
    velocity = sales_velocity(sales, window_days, now)
    days_left = days_of_stock(current_stock, velocity)

    return InventoryAnalysisRow(
        product_id=product.id,
        item_code=product.item_code,
        item_name=product.item_name,
        available_quantity=product.quantity,
        total_sold=total_sold,
        current_stock=current_stock,
        stock_status=classify_stock(current_stock, thresholds),
        sales_velocity=velocity,
        days_of_stock=days_left,
        unit_price=product.unit_price,
        gst=product.gst,
        alerts=build_alerts(current_stock, velocity, days_left, thresholds, rapid_depletion_days),
        sales_breakdown=sales_breakdown(sales),
    )


def summarize(rows: Sequence[InventoryAnalysisRow]) -> Dict[str, Any]:
    at_risk = (StockStatus.OUT_OF_STOCK, StockStatus.LOW_STOCK)
    return {
        'totalProducts': len(rows),
        'outOfStock': sum(1 for row in rows if row.stock_status == StockStatus.OUT_OF_STOCK),
        'lowStock': sum(1 for row in rows if row.stock_status == StockStatus.LOW_STOCK),
        'mediumStock': sum(1 for row in rows if row.stock_status == StockStatus.MEDIUM_STOCK),
        'goodStock': sum(1 for row in rows if row.stock_status == StockStatus.GOOD_STOCK),
        'totalAlerts': sum(len(row.alerts) for row in rows),
        'rapidDepletion': sum(1 for row in rows if row.has_alert(AlertType.RAPID_DEPLETION)),
        'totalSold': sum(row.total_sold for row in rows),
        'totalValueAtRisk': round(sum(
            row.available_quantity * row.unit_price
            for row in rows if row.stock_status in at_risk
        ), 2),
    }


def alert_entries(rows: Iterable[InventoryAnalysisRow], alert_type: AlertType) -> List[Dict[str, Any]]:
    """Flat alert list for one alert type, as returned next to the rows."""
    entries = []
    for row in rows:
        for alert in row.alerts:
            if alert.type != alert_type:
                continue
            entries.append({
                'productId': row.product_id,
                'itemCode': row.item_code,
                'itemName': row.item_name,
                'currentStock': row.current_stock,
                'stockStatus': row.stock_status.value,
                'severity': alert.severity,
                'message': alert.message,
            })
    return entries

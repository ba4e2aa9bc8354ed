"""
Alert/Notification Emitter.

For every analysis row with a CRITICAL or LOW_STOCK alert:
    - queue one low_stock email (Celery) to the configured recipient
    - publish a live ``stock-alert`` event through the injected notifier

Failures are logged per row and never abort the caller.
"""
import json
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Protocol

from core.redis_client import get_redis_client
from .conf import inventory_setting
from .records import AlertType, InventoryAnalysisRow

logger = logging.getLogger(__name__)

NOTIFY_ALERT_TYPES = (AlertType.CRITICAL, AlertType.LOW_STOCK)


class StockNotifier(Protocol):
    def publish(self, event: Dict[str, Any]) -> None:
        ...


class RedisStockEventBroadcaster:
    """Publish stock events as JSON on a Redis pub/sub channel."""

    def __init__(self, channel: Optional[str] = None, client_factory: Callable = get_redis_client):
        self.channel = channel or inventory_setting('LIVE_EVENT_CHANNEL')
        self.client_factory = client_factory

    def publish(self, event: Dict[str, Any]) -> None:
        client = self.client_factory()
        if client is None:
            logger.debug(f"Redis unavailable, dropping {self.channel} event for {event.get('itemCode')}")
            return
        client.publish(self.channel, json.dumps(event))


def get_default_notifier() -> Optional[StockNotifier]:
    if not inventory_setting('ENABLE_LIVE_EVENTS'):
        return None
    return RedisStockEventBroadcaster()


def stock_event(row: InventoryAnalysisRow) -> Dict[str, Any]:
    return {
        'itemCode': row.item_code,
        'itemName': row.item_name,
        'currentStock': row.current_stock,
        'availableQuantity': row.available_quantity,
        'stockStatus': row.stock_status.value,
        'message': f'Low stock alert for {row.item_name}: {row.current_stock} units left',
    }


def queue_low_stock_email(recipient: str, item: Dict[str, Any], message: str = '') -> bool:
    """Queue one low_stock email; returns False (and logs) when queuing fails."""
    from .tasks import send_low_stock_alert

    try:
        send_low_stock_alert.delay(recipient, item, message)
    except Exception as e:
        # Notification failures never fail the request
        logger.error(f"Failed to queue low stock email for {item.get('itemCode')}: {e}")
        return False
    return True


class AlertEmitter:
    """
    Sends notifications for alerting analysis rows.

    Args:
        recipient: Email address for low_stock emails (empty disables email)
        notifier: Live event sink; None disables events
        send_emails: False skips email even when a recipient is configured
    """

    def __init__(
        self,
        recipient: Optional[str] = None,
        notifier: Optional[StockNotifier] = None,
        send_emails: Optional[bool] = None,
    ):
        self.recipient = recipient if recipient is not None else inventory_setting('ALERT_RECIPIENT')
        self.notifier = notifier
        self.send_emails = send_emails if send_emails is not None else inventory_setting('ENABLE_EMAIL_ALERTS')

    def emit(self, rows: Iterable[InventoryAnalysisRow], min_stock: Optional[int] = None) -> Dict[str, int]:
        stats = {'emailsQueued': 0, 'emailsFailed': 0, 'eventsPublished': 0}

        for row in rows:
            alerts = [alert for alert in row.alerts if alert.type in NOTIFY_ALERT_TYPES]
            if not alerts:
                continue

            if self.send_emails and self.recipient:
                item = {
                    'itemCode': row.item_code,
                    'itemName': row.item_name,
                    'currentStock': row.current_stock,
                    'minStock': min_stock,
                }
                if queue_low_stock_email(self.recipient, item, alerts[0].message):
                    stats['emailsQueued'] += 1
                else:
                    stats['emailsFailed'] += 1

            if self.notifier is not None:
                try:
                    self.notifier.publish(stock_event(row))
                    stats['eventsPublished'] += 1
                except Exception as e:
                    logger.warning(f"Failed to publish stock event for {row.item_code}: {e}")

        if stats['emailsQueued'] or stats['emailsFailed']:
            logger.info(
                f"Low stock notifications: {stats['emailsQueued']} queued, "
                f"{stats['emailsFailed']} failed, {stats['eventsPublished']} events"
            )
        return stats

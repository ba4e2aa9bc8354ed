"""
Inventory settings with defaults; ``settings.INVENTORY_CONFIG`` overrides keys.
"""
from django.conf import settings

DEFAULTS = {
    'THRESHOLDS': {'low': 2, 'medium': 5},
    'UNIFIED_THRESHOLDS': {'low': 5, 'medium': 10},
    'VELOCITY_WINDOW_DAYS': 30,
    'RAPID_DEPLETION_DAYS': 7,
    'SOURCE_FETCH_WORKERS': 3,
    'SOURCE_FETCH_TIMEOUT': 10,
    'ALERT_RECIPIENT': '',
    'ENABLE_EMAIL_ALERTS': True,
    'ENABLE_LIVE_EVENTS': True,
    'LIVE_EVENT_CHANNEL': 'stock-alert',
    'DECREMENT_ON_MANUAL_SALE': True,
    'LOW_STOCK_PDF_THRESHOLD': 5,
    'LOW_STOCK_ALERT_THRESHOLD': 5,
}


def inventory_setting(name):
    return {**DEFAULTS, **getattr(settings, 'INVENTORY_CONFIG', {})}[name]

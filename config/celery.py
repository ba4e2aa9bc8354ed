"""
Celery application for background work (low-stock alert emails).
"""
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('billing_inventory')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

"""
Celery tasks for inventory notifications.

Tasks:
    - send_low_stock_alert: Email the stock owner about one low or empty product
"""
import logging
from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
from django.utils.html import escape, strip_tags

logger = logging.getLogger(__name__)


def render_low_stock_email(item: dict, message: str = '') -> str:
    """HTML body of the low_stock notification."""
    current_stock = item.get('currentStock')
    min_stock = item.get('minStock')
    alert_date = timezone.localtime().strftime('%d/%m/%Y, %I:%M:%S %p')
    message = message or 'Stock level is below minimum threshold'

    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #333; border-bottom: 2px solid #ffc107; padding-bottom: 10px;">
        Low Stock Alert
      </h2>
      <div style="background: #fff3cd; padding: 20px; border-radius: 8px; margin: 20px 0;">
        <h3 style="color: #856404; margin-top: 0;">Stock Warning</h3>
        <p><strong>Product:</strong> {escape(item.get('itemName') or 'N/A')}</p>
        <p><strong>Item Code:</strong> {escape(item.get('itemCode') or 'N/A')}</p>
        <p><strong>Current Stock:</strong> {escape(current_stock if current_stock is not None else 'N/A')}</p>
        <p><strong>Minimum Stock:</strong> {escape(min_stock if min_stock is not None else 'N/A')}</p>
        <p><strong>Alert Date:</strong> {escape(alert_date)}</p>
        <p><strong>Message:</strong> {escape(message)}</p>
      </div>
      <div style="background: #e8f5e8; padding: 15px; border-radius: 8px; margin: 20px 0;">
        <p style="margin: 0; color: #2d5a2d;">
          <strong>Action Required:</strong> Please restock this product to maintain inventory levels.
        </p>
      </div>
    </div>
    """


@shared_task(bind=True, max_retries=0, ignore_result=True)
def send_low_stock_alert(self, recipient: str, item: dict, message: str = ''):
    """
    Send one low_stock email.

    Delivery is best effort: SMTP failures are logged and the task finishes
    without retrying.

    Args:
        recipient: Destination address
        item: {itemCode, itemName, currentStock, minStock}
        message: Optional free text for the alert body

    Returns:
        Dict with delivery status
    """
    item_code = item.get('itemCode') or 'N/A'
    subject = f"Low Stock Alert: {item.get('itemName') or item_code} ({item_code})"
    html_message = render_low_stock_email(item, message)

    try:
        send_mail(
            subject,
            strip_tags(html_message),
            settings.DEFAULT_FROM_EMAIL,
            [recipient],
            html_message=html_message,
            fail_silently=False,
        )
    except (SMTPException, OSError) as e:
        logger.error(f"[CELERY] Low stock email for {item_code} to {recipient} failed: {e}")
        return {'status': 'error', 'itemCode': item_code, 'message': str(e)}

    logger.info(f"[CELERY] Low stock email sent for {item_code} to {recipient}")
    return {'status': 'sent', 'itemCode': item_code, 'recipient': recipient}

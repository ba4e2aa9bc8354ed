"""
Low-stock PDF report built with reportlab.
"""
import io
import logging
from typing import Iterable, Optional

from django.utils import timezone
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .records import Product

logger = logging.getLogger(__name__)

HEADER_BG = colors.HexColor('#334155')
OUT_OF_STOCK_BG = colors.HexColor('#fee2e2')
ROW_ALT_BG = colors.HexColor('#f8fafc')

REPORT_FILENAME = 'low_stock_report.pdf'


def build_low_stock_pdf(products: Iterable[Product], threshold: int, generated_at=None) -> bytes:
    """
    Render products at or below ``threshold`` as a one-table PDF.

    Out-of-stock rows are shaded; an empty list still yields a valid document
    stating that nothing is low.
    """
    products = list(products)
    generated_at = generated_at or timezone.localtime()
    styles = getSampleStyleSheet()

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title='Low/No Stock Report',
    )

    story = [
        Paragraph('Low/No Stock Report', styles['Title']),
        Paragraph(
            f"Generated {generated_at.strftime('%d %b %Y %H:%M')} | "
            f"Threshold: {threshold} units | Items: {len(products)}",
            styles['Normal'],
        ),
        Spacer(1, 0.25 * inch),
    ]

    if not products:
        story.append(Paragraph('No items are at or below the threshold.', styles['Normal']))
    else:
        data = [['Item Code', 'Item Name', 'Quantity', 'Status']]
        for product in products:
            data.append([
                product.item_code or '-',
                Paragraph(product.item_name or '-', styles['BodyText']),
                str(product.quantity),
                'Out of stock' if product.quantity <= 0 else 'Low stock',
            ])

        table = Table(data, colWidths=[1.3 * inch, 3.2 * inch, 0.9 * inch, 1.1 * inch], repeatRows=1)
        style_cmds = [
            ('BACKGROUND', (0, 0), (-1, 0), HEADER_BG),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('ALIGN', (2, 0), (2, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.25, colors.grey),
        ]
        for index, product in enumerate(products, start=1):
            if product.quantity <= 0:
                style_cmds.append(('BACKGROUND', (0, index), (-1, index), OUT_OF_STOCK_BG))
            elif index % 2 == 0:
                style_cmds.append(('BACKGROUND', (0, index), (-1, index), ROW_ALT_BG))
        table.setStyle(TableStyle(style_cmds))
        story.append(table)

    doc.build(story)
    logger.info(f"Built low stock PDF with {len(products)} items (threshold {threshold})")
    return buf.getvalue()

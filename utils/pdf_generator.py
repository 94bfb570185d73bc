from io import BytesIO
from reportlab.pdfgen import canvas
from reportlab.lib.units import inch
from models.billing import Receipt
from utils.config import RESTAURANT_DISPLAY_NAME, CURRENCY
import logging

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "INR": "₹"}


def generate_receipt_pdf(receipt: Receipt, restaurant_name: str = RESTAURANT_DISPLAY_NAME) -> BytesIO:
    """
    Render a session receipt (4" wide) for thermal printers.
    Everything printed comes from the receipt snapshot, never from live orders.
    """
    symbol = CURRENCY_SYMBOLS.get(CURRENCY, "")
    items = receipt.items or []
    payments = receipt.payment_details or []

    buffer = BytesIO()
    receipt_width = 4 * inch
    # Grow the page with the number of lines printed
    receipt_height = max(6 * inch, (4.5 + 0.2 * len(items) + 0.15 * len(payments)) * inch)
    c = canvas.Canvas(buffer, pagesize=(receipt_width, receipt_height))

    try:
        margin = 0.2 * inch
        y_pos = receipt_height - margin

        # Business Header
        c.setFont("Helvetica-Bold", 14)
        c.drawCentredString(receipt_width / 2, y_pos, restaurant_name)
        y_pos -= 0.25 * inch

        # Receipt Details
        c.setFont("Helvetica-Bold", 9)
        created = receipt.created_at
        c.drawString(margin, y_pos, f"Receipt: {receipt.receipt_number}")
        if created:
            c.drawRightString(receipt_width - margin, y_pos, f"Date: {created.strftime('%d-%m-%Y')}")
        y_pos -= 0.15 * inch
        if created:
            c.drawString(margin, y_pos, f"Time: {created.strftime('%I:%M %p')} UTC")
        if receipt.table_number:
            c.drawRightString(receipt_width - margin, y_pos, f"Table: {receipt.table_number}")
        y_pos -= 0.15 * inch
        if receipt.customer_name:
            c.setFont("Helvetica", 8)
            c.drawString(margin, y_pos, f"Guest: {receipt.customer_name}")
            y_pos -= 0.15 * inch
        y_pos -= 0.05 * inch

        # Item Header
        c.setFont("Helvetica-Bold", 8)
        c.drawString(margin, y_pos, "DESCRIPTION")
        c.drawCentredString(receipt_width / 2 + 0.4 * inch, y_pos, "QTY")
        c.drawRightString(receipt_width - margin, y_pos, "AMOUNT")
        y_pos -= 0.15 * inch
        c.line(margin, y_pos, receipt_width - margin, y_pos)
        y_pos -= 0.15 * inch

        # Items List
        c.setFont("Helvetica", 8)
        for item in items:
            item_name = item.get("name") or "Unknown Item"
            if len(item_name) > 25:
                item_name = item_name[:22] + "..."
            c.drawString(margin + 0.1 * inch, y_pos, item_name)
            c.drawCentredString(receipt_width / 2 + 0.4 * inch, y_pos, str(item.get("quantity", 0)))
            c.drawRightString(receipt_width - margin - 0.1 * inch, y_pos, f"{symbol}{item.get('line_total', 0):.2f}")
            y_pos -= 0.2 * inch

        # Totals
        c.line(margin, y_pos, receipt_width - margin, y_pos)
        y_pos -= 0.15 * inch
        for label, amount in [
            ("Subtotal:", receipt.subtotal),
            ("Tax:", receipt.tax_amount),
            ("Service charge:", receipt.service_charge),
        ]:
            c.drawString(margin, y_pos, label)
            c.drawRightString(receipt_width - margin, y_pos, f"{symbol}{amount:.2f}")
            y_pos -= 0.15 * inch
        c.setFont("Helvetica-Bold", 9)
        c.drawString(margin, y_pos, "TOTAL:")
        c.drawRightString(receipt_width - margin, y_pos, f"{symbol}{receipt.total_amount:.2f}")
        y_pos -= 0.25 * inch

        # Payment Info
        c.setFont("Helvetica", 8)
        for payment in payments:
            payment_line = f"{payment.get('method', 'N/A')}  {symbol}{payment.get('amount', 0):.2f}  Ref: {payment.get('transaction_id', '')}"
            c.drawString(margin, y_pos, payment_line)
            y_pos -= 0.15 * inch

        # Footer
        c.line(margin, y_pos, receipt_width - margin, y_pos)
        y_pos -= 0.15 * inch
        c.drawCentredString(receipt_width / 2, y_pos, "Thank you for dining with us!")

        c.showPage()
        c.save()
        buffer.seek(0)
        return buffer

    except Exception as e:
        logger.error(f"Error generating receipt PDF for receipt {receipt.receipt_number}: {str(e)}")
        raise

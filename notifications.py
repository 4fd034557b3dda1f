"""
Order receipt emails, sent through the Resend HTTP API.

Sending runs as a background task after the order response; failures are
logged and never reach the shopper.
"""
import logging
from html import escape

import httpx

from config import CURRENCY_SYMBOL, RECEIPT_FROM, RESEND_API_KEY, RESEND_API_URL

logger = logging.getLogger(__name__)


def format_currency(amount) -> str:
    return f"{CURRENCY_SYMBOL}{float(amount or 0):.2f}"


def render_receipt(order: dict) -> str:
    rows = []
    for item in order.get("items") or []:
        size = f"<div>Size: {escape(str(item['size']))}</div>" if item.get("size") else ""
        line_total = float(item.get("price") or 0) * int(item.get("quantity") or 1)
        rows.append(
            "<tr>"
            f"<td><strong>{escape(str(item.get('name') or 'Item'))}</strong>{size}"
            f"<div>Qty: {item.get('quantity', 1)}</div></td>"
            f"<td style=\"text-align: right\">{format_currency(line_total)}</td>"
            "</tr>"
        )

    discount_row = ""
    if float(order.get("discount_amount") or 0) > 0:
        discount_row = (
            f"<tr><td>Discount ({escape(order.get('discount_code') or '')})</td>"
            f"<td style=\"text-align: right\">-{format_currency(order['discount_amount'])}</td></tr>"
        )

    address = ", ".join(
        escape(part) for part in (order.get("shipping_address"), order.get("shipping_city"), order.get("shipping_region")) if part
    )
    return f"""
    <html>
      <body style="font-family: sans-serif; color: #333">
        <h2>Thank you for your order!</h2>
        <p>Order number: <strong>#{escape(order['order_number'])}</strong></p>
        <p>Payment method: {escape(order.get('payment_method') or 'Standard')}</p>
        <h3>Delivery information</h3>
        <p>{escape(order.get('customer_name') or '')}<br>{escape(order.get('customer_phone') or 'N/A')}<br>{address}</p>
        <table style="width: 100%">
          <tbody>{''.join(rows)}</tbody>
        </table>
        <table style="width: 100%">
          <tbody>
            {discount_row}
            <tr><td><strong>Total</strong></td><td style="text-align: right"><strong>{format_currency(order.get('total'))}</strong></td></tr>
          </tbody>
        </table>
      </body>
    </html>
    """


def send_receipt_email(order: dict, api_key: str = None, client: httpx.Client = None) -> bool:
    api_key = api_key or RESEND_API_KEY
    if not api_key:
        logger.warning("RESEND_API_KEY not set, skipping receipt for %s", order.get("order_number"))
        return False

    message = {
        "from": RECEIPT_FROM,
        "to": order["customer_email"],
        "subject": f"Payment Confirmation - Order #{order['order_number']}",
        "html": render_receipt(order),
    }
    owns_client = client is None
    client = client or httpx.Client(timeout=10.0)
    try:
        resp = client.post(RESEND_API_URL, json=message, headers={"Authorization": f"Bearer {api_key}"})
        resp.raise_for_status()
    except httpx.HTTPError:
        logger.exception("Failed to send receipt for order %s", order.get("order_number"))
        return False
    finally:
        if owns_client:
            client.close()
    logger.info("Receipt sent for order %s", order["order_number"])
    return True

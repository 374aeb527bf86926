"""
email_sender.py — RFQ Email Delivery via Mailjet

Sends RFQ and order emails to vendors through the Mailjet v3.1 Send API.

Demo routing: vendor addresses come from the sourcing model and are not
real inboxes, so every message is delivered to the configured sender
mailbox (MAILJET_SENDER_EMAIL). The intended vendor address is kept in the
X-Vendor-Original header.

Pipeline position:
  Sourcing → RFQ → DRAFT EMAIL → SEND → Plan
"""

import html
import json
import time
import logging

import requests

from alloy.core.errors import ConfigError, EmailDeliveryError, ValidationError
from alloy.core.secrets import get_key

log = logging.getLogger("alloy.email")

MAILJET_SEND_URL = "https://api.mailjet.com/v3.1/send"
SENDER_NAME = "Alloy Procurement"
SEND_TIMEOUT = 30


def validate_email_request(data: dict) -> dict:
    data = data or {}
    recipients = data.get("to") or []
    if isinstance(recipients, dict):
        recipients = [recipients]
    recipients = [r for r in recipients if isinstance(r, dict) and r.get("email")]
    if not recipients:
        raise ValidationError("At least one recipient is required")
    if not data.get("subject"):
        raise ValidationError("Subject is required")
    if not (data.get("textPart") or data.get("htmlPart")):
        raise ValidationError("Email body is required")
    return {
        "to": recipients,
        "subject": data["subject"],
        "textPart": data.get("textPart") or "",
        "htmlPart": data.get("htmlPart") or "",
        "customId": data.get("customId"),
    }


def build_messages(request: dict, sender: str) -> list:
    custom_id = request.get("customId") or f"order-{int(time.time() * 1000)}"
    return [{
        "From": {"Email": sender, "Name": SENDER_NAME},
        "To": [{"Email": sender, "Name": r.get("name") or r["email"]}],
        "Subject": request["subject"],
        "TextPart": request["textPart"],
        "HTMLPart": request["htmlPart"],
        "CustomID": custom_id,
        "Headers": {
            "Reply-To": sender,
            "X-Vendor-Original": r["email"],
        },
    } for r in request["to"]]


def parse_send_response(data: dict) -> dict:
    message_ids, message_uuids, errors = [], [], []
    for message in (data or {}).get("Messages") or []:
        if message.get("Status") == "success":
            for rcpt in message.get("To") or []:
                if rcpt.get("MessageID"):
                    message_ids.append(str(rcpt["MessageID"]))
                if rcpt.get("MessageUUID"):
                    message_uuids.append(rcpt["MessageUUID"])
        else:
            for err in message.get("Errors") or []:
                errors.append(err.get("ErrorMessage") or "Unknown error")
    result = {"success": not errors, "messageIds": message_ids, "messageUUIDs": message_uuids}
    if errors:
        result["errors"] = errors
    return result


def send_email(request: dict) -> dict:
    """Send one message per recipient. Raises EmailDeliveryError on HTTP failure."""
    request = validate_email_request(request)
    api_key, secret = get_key("mailjet_key"), get_key("mailjet_secret")
    sender = get_key("mailjet_sender")
    if not (api_key and secret and sender):
        raise ConfigError("Mailjet is not configured: set MAILJET_API_KEY, "
                          "MAILJET_SECRET_KEY and MAILJET_SENDER_EMAIL")

    messages = build_messages(request, sender)
    try:
        resp = requests.post(MAILJET_SEND_URL, auth=(api_key, secret),
                             json={"Messages": messages}, timeout=SEND_TIMEOUT)
    except requests.RequestException as e:
        raise EmailDeliveryError(f"Mailjet request failed: {e}") from e

    if not resp.ok:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        raise EmailDeliveryError(f"Mailjet API error: {resp.status_code} - {json.dumps(body)}")

    result = parse_send_response(resp.json())
    log.info("Mailjet: %d sent, %d errors (%s)", len(result["messageIds"]),
             len(result.get("errors", [])), request["subject"])
    return result


# ─── Drafting ────────────────────────────────────────────────────────────────

def draft_rfq_email(search: dict, vendor: dict, rfq_number: str = "") -> dict:
    """Vendor-facing RFQ message for one component search and one vendor."""
    component = search.get("componentName", "")
    qty = search.get("quantity", 1)
    specs = search.get("specifications", "")
    subject = f"Request for Quote {rfq_number} — {component}" if rfq_number \
        else f"Request for Quote — {component}"

    text = f"""Hello {vendor.get('name', '')} team,

We would like a quote for the following part:

  Part: {component}
  Quantity: {qty}
  Specifications: {specs}
  RFQ Number: {rfq_number or 'n/a'}

Please include unit price, minimum order quantity, lead time and shipping
cost to our facility. Payment is made in USDC on approval of the purchase order.

Best regards,
{SENDER_NAME}"""

    body_html = "<br>".join(html.escape(line) for line in text.split("\n"))
    return {
        "to": [{"email": vendor.get("email", ""), "name": vendor.get("name", "")}],
        "subject": subject,
        "textPart": text,
        "htmlPart": f"<div style=\"font-family:Arial,sans-serif\">{body_html}</div>",
        "customId": rfq_number or None,
    }

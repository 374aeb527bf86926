"""
Alloy Purchase Order
====================
Preview and PDF for the purchase order built from an approved procurement
plan. Items are grouped by vendor with a per-vendor subtotal; a flat PO
shipping charge is added on top of the item totals (which already carry each
vendor's own shipping).
"""

import io
import os
import time
import logging
from datetime import date

from reportlab.lib.pagesizes import letter
from reportlab.lib.colors import HexColor
from reportlab.pdfgen import canvas

from alloy.core.procurement import PO_SHIPPING

log = logging.getLogger("alloy.po")

NAVY   = HexColor("#1a2744")
FILL   = HexColor("#E8EDF7")
BORDER = HexColor("#46468D")
BLACK  = HexColor("#000000")
GRAY   = HexColor("#555555")


def po_number(now_ms: int = None) -> str:
    """PO- plus the last 8 digits of the epoch-millisecond timestamp."""
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"PO-{str(ms)[-8:]}"


def build_purchase_order(plan: list, number: str = None) -> dict:
    groups = {}
    for item in plan or []:
        groups.setdefault(item["vendor"], []).append(item)
    subtotal = round(sum(i.get("totalCost", 0) for i in plan or []), 2)
    return {
        "poNumber": number or po_number(),
        "date": date.today().isoformat(),
        "vendorGroups": [
            {"vendor": vendor, "items": items,
             "subtotal": round(sum(i.get("totalCost", 0) for i in items), 2)}
            for vendor, items in groups.items()
        ],
        "subtotal": subtotal,
        "shipping": PO_SHIPPING,
        "total": round(subtotal + PO_SHIPPING, 2),
    }


def generate_po_pdf(po: dict, output_path: str = None) -> bytes:
    """Render a purchase order. Returns PDF bytes; also writes output_path if given."""
    buf = io.BytesIO()
    W, H = letter
    ML, MR = 50, W - 50
    c = canvas.Canvas(buf, pagesize=letter)
    c.setTitle(f"Alloy Purchase Order {po['poNumber']}")
    c.setAuthor("Alloy Procurement")

    def Y(top_y):
        return H - top_y

    def text(x, yt, txt, font="Helvetica", size=9, color=BLACK, align="left"):
        c.setFont(font, size)
        c.setFillColor(color)
        if align == "right":
            c.drawRightString(x, Y(yt), str(txt))
        else:
            c.drawString(x, Y(yt), str(txt))

    def new_page():
        c.showPage()
        return 60

    text(ML, 60, "ALLOY", "Helvetica-Bold", 18, NAVY)
    text(MR, 60, "PURCHASE ORDER", "Helvetica-Bold", 16, BLACK, "right")
    text(MR, 76, po["poNumber"], "Helvetica", 10, GRAY, "right")
    text(MR, 90, po.get("date", ""), "Helvetica", 9, GRAY, "right")
    c.setStrokeColor(NAVY)
    c.setLineWidth(1.5)
    c.line(ML, Y(100), MR, Y(100))

    cols = [(ML + 4, "Part"), (ML + 260, "Qty"), (ML + 310, "Unit"),
            (ML + 380, "Shipping")]
    y = 125
    for group in po.get("vendorGroups") or []:
        if y > 680:
            y = new_page()
        text(ML, y, group["vendor"], "Helvetica-Bold", 11, NAVY)
        y += 8
        c.setFillColor(FILL)
        c.rect(ML, Y(y) - 18, MR - ML, 18, fill=1, stroke=0)
        for x, label in cols:
            text(x, y + 12, label, "Helvetica-Bold", 8.5)
        text(MR - 4, y + 12, "Total", "Helvetica-Bold", 8.5, align="right")
        y += 18
        for item in group["items"]:
            if y > 720:
                y = new_page()
            text(ML + 4, y + 12, str(item.get("partName", ""))[:48], "Helvetica", 8.5)
            text(ML + 260, y + 12, item.get("quantity", ""), "Helvetica", 8.5)
            text(ML + 310, y + 12, f"${float(item.get('pricePerUnit', 0)):,.2f}", "Helvetica", 8.5)
            text(ML + 380, y + 12, f"${float(item.get('shipping', 0)):,.2f}", "Helvetica", 8.5)
            text(MR - 4, y + 12, f"${float(item.get('totalCost', 0)):,.2f}", "Helvetica", 8.5,
                 align="right")
            c.setStrokeColor(BORDER)
            c.setLineWidth(0.3)
            c.line(ML, Y(y + 18), MR, Y(y + 18))
            y += 18
        text(MR - 4, y + 14, f"Vendor subtotal: ${group['subtotal']:,.2f}", "Helvetica-Oblique",
             8.5, GRAY, "right")
        y += 32

    if y > 700:
        y = new_page()
    for label, key, font in (("Subtotal", "subtotal", "Helvetica"),
                             ("Shipping", "shipping", "Helvetica"),
                             ("TOTAL", "total", "Helvetica-Bold")):
        text(MR - 120, y, label, font, 10, align="right")
        text(MR - 4, y, f"${float(po[key]):,.2f}", font, 10, align="right")
        y += 16

    text(ML, 760, "Payment: USDC via Locus on approval. Reference the PO number on all invoices.",
         "Helvetica", 8, GRAY)
    c.showPage()
    c.save()
    pdf = buf.getvalue()

    if output_path:
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        with open(output_path, "wb") as f:
            f.write(pdf)
    log.info("PO %s generated: %d vendors, $%.2f", po["poNumber"],
             len(po.get("vendorGroups") or []), po["total"])
    return pdf

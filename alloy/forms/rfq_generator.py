"""
Alloy RFQ Specification Sheet
=============================
Turns one extracted component (plus its vendor search, when sourcing has
run) into a technical specification sheet and renders it as a one-page PDF
to send with the RFQ email.

Features:
  - Part number derived from the part name initials and quantity
  - Key fields (torque, voltage, step angle, material, temperature) pulled
    from enhanced extraction output or, failing that, the spec text
  - Vendor shortlist table with unit price, MOQ and lead time
  - Sequential RFQ numbering RFQ-{YYYYMMDD}-{seq}, daily reset
"""

import io
import os
import re
import json
import logging
import threading
from datetime import datetime

from reportlab.lib.pagesizes import letter
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from alloy.core.paths import DATA_DIR
from alloy.core.procurement import extract_quantity

log = logging.getLogger("alloy.rfq")

COUNTER_FILE = os.path.join(DATA_DIR, "rfq_counter.json")
_counter_lock = threading.Lock()

NAVY   = HexColor("#1a2744")
ACCENT = HexColor("#4f8cff")
FILL   = HexColor("#E8EDF7")
BORDER = HexColor("#46468D")
BLACK  = HexColor("#000000")
GRAY   = HexColor("#555555")

SPEC_FIELDS = (
    ("partName", "Part Name"),
    ("partNumber", "Part Number"),
    ("quantity", "Quantity Required"),
    ("torque", "Holding Torque"),
    ("voltage", "Voltage"),
    ("stepAngle", "Step Angle"),
    ("material", "Material"),
    ("temperature", "Operating Temperature"),
)

_PATTERNS = {
    "torque": re.compile(r"[≥>]?\s*\d+(?:\.\d+)?\s*(?:N[·.]?c?m|oz[-\s]?in|kg[-\s]?cm)", re.I),
    "voltage": re.compile(r"\d+(?:\.\d+)?(?:\s*-\s*\d+(?:\.\d+)?)?\s*V(?:\s*(?:DC|AC))?\b", re.I),
    "stepAngle": re.compile(r"\d+(?:\.\d+)?\s*°(?!\s*C)"),
    "temperature": re.compile(r"[-+]?\d+\s*°?C\s*(?:to|-|~)\s*[-+]?\d+\s*°?C", re.I),
}


# ═══════════════════════════════════════════════════════════════════════════════
# RFQ numbering
# ═══════════════════════════════════════════════════════════════════════════════

def _load_counter() -> dict:
    try:
        with open(COUNTER_FILE) as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_counter(data: dict):
    os.makedirs(os.path.dirname(COUNTER_FILE), exist_ok=True)
    with open(COUNTER_FILE, "w") as f:
        json.dump(data, f, indent=2)


def next_rfq_number() -> str:
    """RFQ-{YYYYMMDD}-{seq:03d} — sequential per day."""
    today = datetime.now().strftime("%Y%m%d")
    with _counter_lock:
        data = _load_counter()
        if data.get("date") != today:
            data = {"date": today, "seq": 0}
        data["seq"] += 1
        _save_counter(data)
    return f"RFQ-{today}-{data['seq']:03d}"


# ═══════════════════════════════════════════════════════════════════════════════
# Spec building
# ═══════════════════════════════════════════════════════════════════════════════

def part_number(name: str, quantity: int) -> str:
    initials = "".join(w[0] for w in re.findall(r"[A-Za-z0-9]+", name or "")[:4]).upper()
    return f"RFQ-{initials or 'PART'}-{quantity}"


def _from_text(field: str, text: str) -> str:
    m = _PATTERNS[field].search(text or "")
    return m.group(0).strip() if m else ""


def build_rfq_spec(component: dict, search: dict = None) -> dict:
    """Spec-sheet dict for one component. Missing fields are empty strings."""
    name = component.get("name", "")
    qty = extract_quantity(component.get("quantity"))
    text = component.get("specifications", "")
    elec = component.get("electricalSpecs") or {}
    mech = component.get("mechanicalSpecs") or {}
    therm = component.get("thermalSpecs") or {}
    materials = component.get("requiredMaterials") or []

    spec = {
        "partName": name,
        "partNumber": part_number(name, qty),
        "quantity": qty,
        "torque": mech.get("torque") or _from_text("torque", text),
        "voltage": elec.get("voltage") or _from_text("voltage", text),
        "stepAngle": mech.get("stepAngle") or _from_text("stepAngle", text),
        "material": ", ".join(filter(None, (
            f"{m.get('grade', '')} {m.get('name', '')}".strip() for m in materials))),
        "temperature": therm.get("operatingTemperature") or _from_text("temperature", text),
        "specifications": text,
        "certifications": [c.get("standard") for c in component.get("certifications") or []
                           if c.get("standard")],
        "vendors": [],
    }
    for v in (search or {}).get("vendors") or []:
        spec["vendors"].append({
            "name": v.get("name", ""),
            "pricePerUnit": v.get("pricePerUnit", 0),
            "moq": v.get("moq", 0),
            "leadTime": v.get("leadTime", 0),
            "email": v.get("email", ""),
        })
    return spec


# ═══════════════════════════════════════════════════════════════════════════════
# PDF
# ═══════════════════════════════════════════════════════════════════════════════

def generate_rfq_pdf(spec: dict, output_path: str = None, rfq_number: str = None) -> bytes:
    """Render the spec sheet. Returns the PDF bytes; also writes output_path if given."""
    rfq_number = rfq_number or spec.get("rfqNumber") or next_rfq_number()
    buf = io.BytesIO()
    W, H = letter
    ML, MR = 50, W - 50
    c = canvas.Canvas(buf, pagesize=letter)
    c.setTitle(f"Alloy RFQ {rfq_number}")
    c.setAuthor("Alloy Procurement")

    def Y(top_y):
        return H - top_y

    def text(x, yt, txt, font="Helvetica", size=9, color=BLACK, align="left"):
        c.setFont(font, size)
        c.setFillColor(color)
        s = str(txt) if txt not in (None, "") else "—"
        if align == "right":
            c.drawRightString(x, Y(yt), s)
        else:
            c.drawString(x, Y(yt), s)

    def box(x, yt, w, h, fill=False):
        if fill:
            c.setFillColor(FILL)
            c.rect(x, Y(yt) - h, w, h, fill=1, stroke=0)
        c.setStrokeColor(BORDER)
        c.setLineWidth(0.5)
        c.rect(x, Y(yt) - h, w, h, fill=0, stroke=1)

    # ── Header ────────────────────────────────────────────────────────────────
    text(ML, 60, "ALLOY", "Helvetica-Bold", 18, NAVY)
    text(ML, 74, "Autonomous Procurement", "Helvetica-Oblique", 8, ACCENT)
    text(MR, 60, "REQUEST FOR QUOTE", "Helvetica-Bold", 16, BLACK, "right")
    text(MR, 76, rfq_number, "Helvetica", 10, GRAY, "right")
    text(MR, 90, datetime.now().strftime("%B %d, %Y"), "Helvetica", 9, GRAY, "right")
    c.setStrokeColor(NAVY)
    c.setLineWidth(1.5)
    c.line(ML, Y(100), MR, Y(100))

    # ── Spec table ────────────────────────────────────────────────────────────
    text(ML, 125, "Technical Specification Sheet", "Helvetica-Bold", 12, NAVY)
    row_h, label_w = 20, 150
    y = 135
    for key, label in SPEC_FIELDS:
        box(ML, y, label_w, row_h, fill=True)
        box(ML + label_w, y, MR - ML - label_w, row_h)
        text(ML + 6, y + 14, label, "Helvetica-Bold", 9)
        text(ML + label_w + 6, y + 14, spec.get(key, ""), "Helvetica", 9)
        y += row_h

    if spec.get("certifications"):
        y += 10
        text(ML, y + 10, "Certifications: " + ", ".join(spec["certifications"]), "Helvetica", 9)
        y += 14

    # ── Full specification text ───────────────────────────────────────────────
    y += 24
    text(ML, y, "Specifications", "Helvetica-Bold", 11, NAVY)
    y += 14
    for line in simpleSplit(spec.get("specifications") or "—", "Helvetica", 9, MR - ML)[:18]:
        text(ML, y, line, "Helvetica", 9)
        y += 12

    # ── Vendor shortlist ──────────────────────────────────────────────────────
    vendors = spec.get("vendors") or []
    if vendors:
        y += 18
        text(ML, y, "Vendor Shortlist", "Helvetica-Bold", 11, NAVY)
        y += 8
        cols = [(ML, "Vendor"), (ML + 220, "Unit Price"), (ML + 310, "MOQ"),
                (ML + 370, "Lead Time"), (ML + 440, "Contact")]
        box(ML, y, MR - ML, row_h, fill=True)
        for x, label in cols:
            text(x + 4, y + 14, label, "Helvetica-Bold", 8.5)
        y += row_h
        for v in vendors[:8]:
            box(ML, y, MR - ML, row_h)
            text(ML + 4, y + 14, v["name"][:40], "Helvetica", 8.5)
            text(ML + 224, y + 14, f"${float(v['pricePerUnit']):,.2f}", "Helvetica", 8.5)
            text(ML + 314, y + 14, v["moq"], "Helvetica", 8.5)
            text(ML + 374, y + 14, f"{v['leadTime']} days", "Helvetica", 8.5)
            text(ML + 444, y + 14, (v.get("email") or "")[:24], "Helvetica", 7.5)
            y += row_h

    # ── Footer ────────────────────────────────────────────────────────────────
    text(ML, 760, "Quotes should include unit price, MOQ, lead time and shipping. "
                  "Payment in USDC on PO approval.", "Helvetica", 8, GRAY)

    c.showPage()
    c.save()
    pdf = buf.getvalue()

    if output_path:
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        with open(output_path, "wb") as f:
            f.write(pdf)
    log.info("RFQ %s generated for %s (%d bytes)", rfq_number, spec.get("partName"), len(pdf))
    return pdf

"""
file_processor.py — Design File Extraction Agent

First step of the pipeline. Takes the text of an uploaded engineering design
file (BOM export, spec sheet, CAD notes) and asks Claude for a structured
list of components and raw materials.

Modes:
  BASIC (default): pages, components (name, quantity, specifications),
    materials (name, qty).
  ENHANCED (ENHANCED_FILE_PROCESSING=true): adds per-component materials
    with grades, electrical/thermal/mechanical specs, certifications,
    environmental constraints and tolerances, plus document metadata.
    convert_to_basic_format() projects it back for the downstream steps.

Pipeline position:
  UPLOAD → BOM estimate → Priorities → Sourcing → RFQ → Plan → Approval

Project context: if a CONTEXT.md sits in the working directory its text is
prepended to the system prompt.
"""

import io
import logging

from pypdf import PdfReader

from alloy.core import flags
from alloy.core.llm import call_claude, parse_json_response, schema_instruction
from alloy.core.paths import load_context

log = logging.getLogger("alloy.file_processor")

BASIC_MAX_TOKENS = 4096
ENHANCED_MAX_TOKENS = 16384
MAX_CONTENT_CHARS = 200_000

# ─── Schemas ─────────────────────────────────────────────────────────────────

BASIC_SCHEMA = {
    "type": "object",
    "properties": {
        "pages": {"type": "number", "description": "Number of pages or sections"},
        "components": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "quantity": {"type": "string", "description": 'With units, e.g. "3 units"'},
                    "specifications": {"type": "string"},
                },
                "required": ["name", "quantity", "specifications"],
            },
        },
        "materials": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"name": {"type": "string"}, "qty": {"type": "string"}},
                "required": ["name", "qty"],
            },
        },
    },
    "required": ["pages", "components", "materials"],
}

_SPEC_BLOCK = {"type": "object", "additionalProperties": {"type": "string"}}

ENHANCED_SCHEMA = {
    "type": "object",
    "properties": {
        "pages": {"type": "number"},
        "documentType": {"type": "string", "description": 'e.g. "BOM", "CAD", "Specification Sheet"'},
        "projectName": {"type": "string"},
        "revision": {"type": "string"},
        "date": {"type": "string"},
        "components": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "quantity": {"type": "string"},
                    "specifications": {"type": "string"},
                    "requiredMaterials": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string"},
                                "quantity": {"type": "string"},
                                "grade": {"type": "string", "description": 'e.g. "6061-T6"'},
                            },
                            "required": ["name", "quantity"],
                        },
                    },
                    "electricalSpecs": _SPEC_BLOCK,
                    "thermalSpecs": _SPEC_BLOCK,
                    "mechanicalSpecs": _SPEC_BLOCK,
                    "certifications": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "standard": {"type": "string", "description": 'e.g. "UL", "IEC 61730"'},
                                "number": {"type": "string"},
                                "description": {"type": "string"},
                            },
                            "required": ["standard"],
                        },
                    },
                    "environmentalConstraints": _SPEC_BLOCK,
                    "tolerances": _SPEC_BLOCK,
                    "notes": {"type": "string"},
                },
                "required": ["name", "quantity", "specifications"],
            },
        },
        "materials": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "qty": {"type": "string"},
                    "grade": {"type": "string"},
                },
                "required": ["name", "qty"],
            },
        },
    },
    "required": ["pages", "components", "materials"],
}

# ─── Prompts ─────────────────────────────────────────────────────────────────

_BASIC_SYSTEM = """You are an engineering file processor for an autonomous procurement system.
{context}
Analyze the engineering design file and extract:

1. Pages: the number of main pages or sections in the document.
2. Components: EVERY component listed, with the exact name, the exact quantity
   as written (e.g. "3 units", "1 sheet") and the complete specifications.
3. Materials: every unique raw material (aluminum grades, steels, copper,
   rubber, plastics). Derive them from component names and specifications,
   e.g. "6061-T6 Aluminum Plate" gives material "6061-T6 Aluminum", and use the
   quantity of the component that mentions it.

Do not skip anything. Respond with valid JSON matching the schema provided."""

_ENHANCED_SYSTEM = """You are an expert engineering file processor for an autonomous procurement system.
{context}
Analyze the engineering design file (PDF text, CAD export, BOM, spec sheet) and
extract COMPREHENSIVE structured data:

1. Components with full engineering specifications: required materials with
   grades, electrical specs (voltage, current, power), thermal specs (operating
   temperature, heat dissipation), mechanical specs (dimensions, weight, torque,
   tolerance), certifications (UL, IEC, CE, RoHS, ISO), environmental
   constraints (operating environment, IP rating, humidity) and tolerances.
2. Materials with grades and quantities.
3. Document metadata: type, project name, revision, date.

Leave out any specification the document does not mention.
Respond with valid JSON matching the schema provided."""


def _system_prompt(template: str) -> str:
    context = load_context()
    return template.format(context=f"\nContext:\n{context}\n" if context else "")


def _user_prompt(content: str, file_name: str, file_size: int) -> str:
    if len(content) > MAX_CONTENT_CHARS:
        log.warning("%s truncated from %d to %d chars", file_name, len(content), MAX_CONTENT_CHARS)
        content = content[:MAX_CONTENT_CHARS]
    return (f"Analyze the following engineering design file and extract ALL information.\n\n"
            f"File name: {file_name}\nFile size: {file_size} bytes\n\n"
            f"File content:\n```\n{content}\n```")


# ─── Public API ──────────────────────────────────────────────────────────────

def decode_upload(raw: bytes) -> str:
    """Uploaded bytes → text.

    PDFs go through pypdf text extraction, one block per page. Everything else
    is read as UTF-8 with undecodable bytes replaced by U+FFFD.
    """
    if raw.startswith(b"%PDF"):
        try:
            reader = PdfReader(io.BytesIO(raw))
            pages = [page.extract_text() or "" for page in reader.pages]
            log.info("Extracted text from %d PDF pages", len(pages))
            return "\n\n".join(f"--- Page {n} ---\n{text}" for n, text in enumerate(pages, 1))
        except Exception as e:
            log.warning("PDF text extraction failed, reading raw bytes: %s", e)
    return raw.decode("utf-8", errors="replace")


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _basic_defaults(result: dict) -> dict:
    if not isinstance(result, dict):
        result = {}
    return {
        "pages": result.get("pages") or 1,
        "components": result.get("components") or [],
        "materials": result.get("materials") or [],
    }


def process_design_file_basic(content: str, file_name: str, file_size: int) -> dict:
    text = call_claude(
        _user_prompt(content, file_name, file_size) + schema_instruction(BASIC_SCHEMA),
        system=_system_prompt(_BASIC_SYSTEM),
        max_tokens=BASIC_MAX_TOKENS,
    )
    return _basic_defaults(parse_json_response(text))


def process_design_file_enhanced(content: str, file_name: str, file_size: int) -> dict:
    text = call_claude(
        _user_prompt(content, file_name, file_size) + schema_instruction(ENHANCED_SCHEMA),
        system=_system_prompt(_ENHANCED_SYSTEM),
        max_tokens=ENHANCED_MAX_TOKENS,
    )
    result = parse_json_response(text)
    if not isinstance(result, dict):
        result = {}
    result.update(_basic_defaults(result))
    log.info("Enhanced extraction: %d components, %d materials, type=%s",
             len(result["components"]), len(result["materials"]),
             result.get("documentType", "?"))
    return result


def convert_to_basic_format(enhanced: dict) -> dict:
    """Drop the enhanced fields, keeping only what the rest of the pipeline reads."""
    return {
        "pages": enhanced.get("pages") or 1,
        "components": [
            {"name": c.get("name", ""), "quantity": c.get("quantity", ""),
             "specifications": c.get("specifications", "")}
            for c in enhanced.get("components") or []
        ],
        "materials": [
            {"name": m.get("name", ""), "qty": m.get("qty", "")}
            for m in enhanced.get("materials") or []
        ],
    }


def process_design_file(content: str, file_name: str, file_size: int) -> dict:
    """Extract components and materials from a design file.

    Returns the basic shape {pages, components, materials}. In enhanced mode
    the full extraction is attached under "enhanced".
    """
    log.info("Processing design file %s (%s)", file_name, format_file_size(file_size))
    if flags.enabled("ENHANCED_FILE_PROCESSING"):
        enhanced = process_design_file_enhanced(content, file_name, file_size)
        result = convert_to_basic_format(enhanced)
        result["enhanced"] = enhanced
    else:
        result = process_design_file_basic(content, file_name, file_size)
    log.info("Extracted %d components, %d materials from %s",
             len(result["components"]), len(result["materials"]), file_name)
    return result


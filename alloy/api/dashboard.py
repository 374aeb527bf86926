"""
Alloy Procurement API
Design upload → BOM estimate → priorities → vendor sourcing → RFQ → plan
→ approval → USDC payment → CRM order log.

All routes live on one Blueprint; app.py registers it and the security
middleware. JSON in, JSON out (PDF endpoints excepted).
"""

import io
import time
import logging
import functools

from flask import Blueprint, request, jsonify, send_file
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from alloy.agents.bom_estimator import generate_bom_estimate
from alloy.agents.email_sender import draft_rfq_email, send_email
from alloy.agents.file_processor import decode_upload, format_file_size, process_design_file
from alloy.agents.payment_executor import execute_payments
from alloy.agents.vendor_sourcing import source_vendors
from alloy.api.security import rate_limit
from alloy.api.trace import Trace, clear_traces, get_trace, get_traces, trace_counts
from alloy.auto.execution import EXECUTION_STEPS, approve_and_execute
from alloy.core import flags, orders, procurement
from alloy.core.errors import ProcurementError, ValidationError
from alloy.core.secrets import validate_all
from alloy.forms.purchase_order import build_purchase_order, generate_po_pdf
from alloy.forms.rfq_generator import build_rfq_spec, generate_rfq_pdf, next_rfq_number

log = logging.getLogger("alloy.api")

bp = Blueprint("alloy", __name__)


# ── Request-level structured logging ────────────────────────────────────────

@bp.before_app_request
def _log_request_start():
    request._start_time = time.time()


@bp.after_app_request
def _log_request_end(response):
    if hasattr(request, "_start_time"):
        duration_ms = round((time.time() - request._start_time) * 1000, 1)
        if request.path != "/health":
            log.info("%s %s → %d (%.0fms)",
                     request.method, request.path, response.status_code, duration_ms,
                     extra={"route": request.path, "method": request.method,
                            "status": response.status_code, "duration_ms": duration_ms})
    return response


@bp.app_errorhandler(RequestEntityTooLarge)
def _too_large(e):
    return jsonify({"error": "File too large", "message": "Uploads are limited to 10 MB"}), 413


# ═══════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════

def api_errors(operation: str):
    """ValidationError → 400 {error}; any other failure → 500 {error, message}."""
    def decorator(f):
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except HTTPException:
                raise
            except ProcurementError as e:
                log.error("%s failed: %s", operation, e)
                return jsonify({"error": operation, "message": str(e)}), 500
            except Exception as e:
                log.exception("%s failed unexpectedly", operation)
                return jsonify({"error": operation, "message": str(e)}), 500
        return wrapper
    return decorator


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _plan_from(data: dict) -> list:
    plan = data.get("plan")
    if not isinstance(plan, list) or not plan:
        raise ValidationError("Procurement plan is empty")
    return plan


# ═══════════════════════════════════════════════════════════════════════
# Core pipeline
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/health")
def health():
    return jsonify({"status": "ok"})


@bp.route("/api/upload-design", methods=["POST"])
@rate_limit("llm")
@api_errors("Failed to process file")
def upload_design():
    f = request.files.get("file")
    if f is None or not f.filename:
        return jsonify({"error": "No file uploaded"}), 400

    raw = f.read()
    size = len(raw)
    info = process_design_file(decode_upload(raw), f.filename, size)
    bom = generate_bom_estimate(info)
    resp = {
        "fileName": f.filename,
        "fileSize": size,
        "fileSizeFormatted": format_file_size(size),
        "pages": info.get("pages") or 1,
        "componentsFound": len(info["components"]),
        "components": info["components"],
        "materials": info["materials"],
        "bomEstimate": bom,
    }
    if "enhanced" in info:
        resp["enhanced"] = info["enhanced"]
    return jsonify(resp)


@bp.route("/api/spending-range", methods=["POST"])
@api_errors("Failed to compute spending range")
def spending_range():
    data = _body()
    ranges = procurement.adjusted_ranges(data.get("bomEstimate"), data.get("components") or [],
                                         data.get("priorities") or {})
    limit = procurement.resolve_spending_limit(data.get("spendingLimit"), ranges)
    return jsonify({
        "multiplier": procurement.cost_multiplier(data.get("priorities") or {}),
        "ranges": ranges,
        "recommendedLimit": procurement.recommended_spending_limit(ranges),
        "spendingLimit": limit,
        "warnings": procurement.spending_limit_warnings(limit, ranges),
    })


@bp.route("/api/source-vendors", methods=["POST"])
@rate_limit("llm")
@api_errors("Failed to source vendors")
def api_source_vendors():
    data = _body()
    trace = Trace("vendor_sourcing", components=len(data.get("components") or []))
    with trace.stage("Vendor search"):
        result = source_vendors(data)
    trace.ok("Sourcing complete", vendors=sum(len(s["vendors"]) for s in result["componentSearches"]))
    selected = procurement.auto_select_vendors(result)
    result["selectedVendors"] = selected
    result["selectedTotal"] = procurement.selected_total_cost(result, selected)
    result["traceId"] = trace.id
    return jsonify(result)


@bp.route("/api/rfq/spec", methods=["POST"])
@api_errors("Failed to build RFQ spec")
def rfq_spec():
    data = _body()
    component = data.get("component")
    if not isinstance(component, dict) or not component.get("name"):
        raise ValidationError("component with a name is required")
    spec = build_rfq_spec(component, data.get("search"))
    spec["rfqNumber"] = next_rfq_number()
    emails = [draft_rfq_email(data["search"], v, spec["rfqNumber"])
              for v in (data.get("search") or {}).get("vendors") or []
              if v.get("email")] if data.get("search") else []
    return jsonify({"spec": spec, "emails": emails})


@bp.route("/api/rfq/pdf", methods=["POST"])
@api_errors("Failed to generate RFQ PDF")
def rfq_pdf():
    data = _body()
    spec = data.get("spec") or build_rfq_spec(data.get("component") or {}, data.get("search"))
    if not spec.get("partName"):
        raise ValidationError("spec.partName is required")
    pdf = generate_rfq_pdf(spec)
    return send_file(io.BytesIO(pdf), mimetype="application/pdf", as_attachment=True,
                     download_name=f"{spec.get('partNumber') or 'rfq'}.pdf")


@bp.route("/api/send-email", methods=["POST"])
@rate_limit("default")
@api_errors("Failed to send email")
def api_send_email():
    return jsonify(send_email(_body()))


@bp.route("/api/procurement-plan", methods=["POST"])
@api_errors("Failed to build procurement plan")
def procurement_plan():
    """Build a plan, or apply one edit to an existing plan.

    Body: {sourcing, selectedVendors?, components?} to build, or
          {plan, sourcing?, edit: {itemId, quantity? | vendor?}} to edit.
    """
    data = _body()
    sourcing = data.get("sourcing") or {}
    edit = data.get("edit")
    if edit:
        plan = _plan_from(data)
        if "quantity" in edit:
            plan = procurement.update_item_quantity(plan, edit.get("itemId"), edit["quantity"])
        if edit.get("vendor"):
            plan = procurement.update_item_vendor(plan, edit.get("itemId"), edit["vendor"], sourcing)
    else:
        if not sourcing.get("componentSearches"):
            raise ValidationError("sourcing.componentSearches is required")
        selected = data.get("selectedVendors") or procurement.auto_select_vendors(sourcing)
        plan = procurement.build_procurement_plan(sourcing, selected, data.get("components"))
    return jsonify({"plan": plan, "summary": procurement.plan_summary(plan, sourcing)})


@bp.route("/api/procurement-plan/summary", methods=["POST"])
@api_errors("Failed to summarize plan")
def plan_summary():
    data = _body()
    plan = _plan_from(data)
    summary = procurement.plan_summary(plan, data.get("sourcing"))
    summary["approvalTotal"] = procurement.approval_total(plan)
    return jsonify(summary)


@bp.route("/api/po/preview", methods=["POST"])
@api_errors("Failed to build purchase order")
def po_preview():
    return jsonify(build_purchase_order(_plan_from(_body())))


@bp.route("/api/po/pdf", methods=["POST"])
@api_errors("Failed to generate purchase order PDF")
def po_pdf():
    po = build_purchase_order(_plan_from(_body()))
    pdf = generate_po_pdf(po)
    return send_file(io.BytesIO(pdf), mimetype="application/pdf", as_attachment=True,
                     download_name=f"{po['poNumber']}.pdf")


@bp.route("/api/execute-payment", methods=["POST"])
@rate_limit("payment")
@api_errors("Payment execution failed")
def api_execute_payment():
    return jsonify(execute_payments(_plan_from(_body())))


@bp.route("/api/approve-and-execute", methods=["POST"])
@rate_limit("payment")
@api_errors("Payment execution failed")
def api_approve_and_execute():
    data = _body()
    result = approve_and_execute(_plan_from(data), data.get("confirmations") or {},
                                 data.get("sourcing"))
    return jsonify(result), (200 if result["success"] else 502)


# ═══════════════════════════════════════════════════════════════════════
# CRM
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/orders")
@api_errors("Failed to load orders")
def api_orders():
    return jsonify({"orders": orders.search_orders(request.args.get("q", ""))})


@bp.route("/api/orders/<order_id>")
@api_errors("Failed to load order")
def api_order(order_id):
    order = orders.get_order(order_id)
    if not order:
        return jsonify({"error": f"Order not found: {order_id}"}), 404
    return jsonify(order)


@bp.route("/api/orders/<order_id>/status", methods=["POST"])
@api_errors("Failed to update order")
def api_order_status(order_id):
    data = _body()
    if not data.get("lifecycleState"):
        raise ValidationError("lifecycleState is required")
    return jsonify(orders.update_lifecycle(order_id, data["lifecycleState"],
                                           actor=data.get("actor", "user"),
                                           notes=data.get("notes", "")))


@bp.route("/api/crm/metrics")
@api_errors("Failed to compute metrics")
def api_crm_metrics():
    return jsonify(orders.crm_metrics())


# ═══════════════════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/admin/traces")
def api_traces():
    limit = max(1, procurement.parse_int(request.args.get("limit"), 50))
    return jsonify({"traces": get_traces(workflow=request.args.get("workflow"),
                                         status=request.args.get("status"), limit=limit)})


@bp.route("/api/admin/traces", methods=["DELETE"])
def api_clear_traces():
    clear_traces()
    return jsonify({"ok": True})


@bp.route("/api/admin/traces/<trace_id>")
def api_trace(trace_id):
    t = get_trace(trace_id)
    if not t:
        return jsonify({"error": "Trace not found"}), 404
    return jsonify(t)


@bp.route("/api/admin/status")
def api_status():
    return jsonify({
        "secrets": validate_all(),
        "flags": flags.snapshot(),
        "traces": trace_counts(),
        "executionSteps": list(EXECUTION_STEPS),
    })

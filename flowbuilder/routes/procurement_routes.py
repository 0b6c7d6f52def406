from __future__ import annotations

from flask import Blueprint, jsonify, request

from flowbuilder.application.notification_service import NotificationService
from flowbuilder.application.project_service import ProjectService
from flowbuilder.application.purchase_order_service import PurchaseOrderService
from flowbuilder.application.quote_service import QuoteService
from flowbuilder.application.rfq_service import RfqService
from flowbuilder.context import current_context
from flowbuilder.db import get_db


procurement_bp = Blueprint("procurement", __name__)


_NOTIFICATION_SERVICE = NotificationService()
_PROJECT_SERVICE = ProjectService()
_RFQ_SERVICE = RfqService(notification_service=_NOTIFICATION_SERVICE)
_QUOTE_SERVICE = QuoteService(notification_service=_NOTIFICATION_SERVICE)
_PURCHASE_ORDER_SERVICE = PurchaseOrderService(notification_service=_NOTIFICATION_SERVICE)


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _arg_int(name: str) -> int | None:
    raw = (request.args.get(name) or "").strip()
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _respond(result):
    return jsonify(result.payload), result.status_code


# Projects


@procurement_bp.route("/api/projects", methods=["GET", "POST"])
def projects_api():
    ctx = current_context()
    if request.method == "POST":
        return _respond(_PROJECT_SERVICE.create_project(get_db(), ctx, _payload()))
    return _respond(_PROJECT_SERVICE.list_projects(get_db(), ctx))


@procurement_bp.route("/api/projects/<int:project_id>", methods=["GET", "PATCH", "DELETE"])
def project_detail_api(project_id: int):
    ctx = current_context()
    if request.method == "PATCH":
        return _respond(_PROJECT_SERVICE.update_project(get_db(), ctx, project_id, _payload()))
    if request.method == "DELETE":
        return _respond(_PROJECT_SERVICE.delete_project(get_db(), ctx, project_id))
    return _respond(_PROJECT_SERVICE.get_project(get_db(), ctx, project_id))


@procurement_bp.route("/api/projects/<int:project_id>/rfqs", methods=["GET", "POST"])
def project_rfqs_api(project_id: int):
    ctx = current_context()
    if request.method == "POST":
        return _respond(_RFQ_SERVICE.create_rfq(get_db(), ctx, project_id=project_id, payload=_payload()))
    return _respond(
        _RFQ_SERVICE.list_project_rfqs(
            get_db(),
            ctx,
            project_id=project_id,
            search=(request.args.get("search") or "").strip(),
            status=(request.args.get("status") or "").strip().lower(),
            sort=(request.args.get("sort") or "newest").strip().lower(),
        )
    )


@procurement_bp.route("/api/projects/<int:project_id>/quotes", methods=["GET"])
def project_quotes_api(project_id: int):
    return _respond(
        _QUOTE_SERVICE.list_project_quotes(
            get_db(),
            current_context(),
            project_id=project_id,
            status=(request.args.get("status") or "").strip().lower(),
            rfq_id=_arg_int("rfq_id"),
        )
    )


@procurement_bp.route("/api/projects/<int:project_id>/po-tracker", methods=["GET"])
def project_po_tracker_api(project_id: int):
    return _respond(
        _PURCHASE_ORDER_SERVICE.project_tracker(
            get_db(),
            current_context(),
            project_id=project_id,
            status=(request.args.get("status") or "").strip().lower(),
        )
    )


# RFQs


@procurement_bp.route("/api/rfqs/<int:rfq_id>", methods=["GET", "PATCH", "DELETE"])
def rfq_detail_api(rfq_id: int):
    ctx = current_context()
    if request.method == "PATCH":
        return _respond(_RFQ_SERVICE.update_rfq(get_db(), ctx, rfq_id=rfq_id, payload=_payload()))
    if request.method == "DELETE":
        return _respond(_RFQ_SERVICE.delete_rfq(get_db(), ctx, rfq_id=rfq_id))
    return _respond(_RFQ_SERVICE.get_rfq(get_db(), ctx, rfq_id=rfq_id))


@procurement_bp.route("/api/rfqs/<int:rfq_id>/distribute", methods=["POST"])
def rfq_distribute_api(rfq_id: int):
    return _respond(_RFQ_SERVICE.distribute_rfq(get_db(), current_context(), rfq_id=rfq_id))


@procurement_bp.route("/api/rfqs/<int:rfq_id>/close", methods=["POST"])
def rfq_close_api(rfq_id: int):
    return _respond(_RFQ_SERVICE.close_rfq(get_db(), current_context(), rfq_id=rfq_id))


@procurement_bp.route("/api/rfqs/<int:rfq_id>/suppliers-status", methods=["GET"])
def rfq_suppliers_status_api(rfq_id: int):
    return _respond(_RFQ_SERVICE.suppliers_status(get_db(), current_context(), rfq_id=rfq_id))


@procurement_bp.route("/api/rfqs/<int:rfq_id>/compare", methods=["GET"])
def rfq_compare_api(rfq_id: int):
    return _respond(_RFQ_SERVICE.compare_quotes(get_db(), current_context(), rfq_id=rfq_id))


@procurement_bp.route("/api/supplier/rfqs", methods=["GET"])
def supplier_rfqs_api():
    return _respond(
        _RFQ_SERVICE.list_supplier_rfqs(
            get_db(),
            current_context(),
            status=(request.args.get("status") or "").strip().lower(),
        )
    )


# Quotes


@procurement_bp.route("/api/rfqs/<int:rfq_id>/quotes", methods=["POST"])
def rfq_quotes_api(rfq_id: int):
    return _respond(_QUOTE_SERVICE.submit_quote(get_db(), current_context(), rfq_id=rfq_id, payload=_payload()))


@procurement_bp.route("/api/supplier/quotes", methods=["GET"])
def supplier_quotes_api():
    return _respond(
        _QUOTE_SERVICE.list_own_quotes(
            get_db(),
            current_context(),
            status=(request.args.get("status") or "").strip().lower(),
        )
    )


@procurement_bp.route("/api/quotes/<int:quote_id>", methods=["GET", "PATCH", "DELETE"])
def quote_detail_api(quote_id: int):
    ctx = current_context()
    if request.method == "PATCH":
        return _respond(_QUOTE_SERVICE.update_quote(get_db(), ctx, quote_id=quote_id, payload=_payload()))
    if request.method == "DELETE":
        return _respond(_QUOTE_SERVICE.delete_quote(get_db(), ctx, quote_id=quote_id))
    return _respond(_QUOTE_SERVICE.get_quote(get_db(), ctx, quote_id=quote_id))


@procurement_bp.route("/api/quotes/<int:quote_id>/purchase-order", methods=["POST"])
def quote_award_api(quote_id: int):
    return _respond(_QUOTE_SERVICE.award_quote(get_db(), current_context(), quote_id=quote_id, payload=_payload()))


# Purchase orders


@procurement_bp.route("/api/purchase-orders", methods=["GET"])
def purchase_orders_api():
    return _respond(
        _PURCHASE_ORDER_SERVICE.list_purchase_orders(
            get_db(),
            current_context(),
            status=(request.args.get("status") or "").strip().lower(),
            project_id=_arg_int("project_id"),
        )
    )


@procurement_bp.route("/api/purchase-orders/<int:purchase_order_id>", methods=["GET", "PATCH"])
def purchase_order_detail_api(purchase_order_id: int):
    ctx = current_context()
    if request.method == "PATCH":
        return _respond(
            _PURCHASE_ORDER_SERVICE.update_notes(get_db(), ctx, purchase_order_id=purchase_order_id, payload=_payload())
        )
    return _respond(_PURCHASE_ORDER_SERVICE.get_purchase_order(get_db(), ctx, purchase_order_id=purchase_order_id))


@procurement_bp.route("/api/purchase-orders/<int:purchase_order_id>/status", methods=["POST"])
def purchase_order_status_api(purchase_order_id: int):
    return _respond(
        _PURCHASE_ORDER_SERVICE.advance_status(
            get_db(), current_context(), purchase_order_id=purchase_order_id, payload=_payload()
        )
    )


@procurement_bp.route("/api/purchase-orders/<int:purchase_order_id>/cancel", methods=["POST"])
def purchase_order_cancel_api(purchase_order_id: int):
    return _respond(_PURCHASE_ORDER_SERVICE.cancel(get_db(), current_context(), purchase_order_id=purchase_order_id))

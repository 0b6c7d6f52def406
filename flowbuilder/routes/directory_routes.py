from __future__ import annotations

from flask import Blueprint, jsonify, request

from flowbuilder.application.directory_service import CompanyService, SupplierService
from flowbuilder.context import current_context
from flowbuilder.db import get_db


directory_bp = Blueprint("directory", __name__)

_COMPANY_SERVICE = CompanyService()
_SUPPLIER_SERVICE = SupplierService()


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _respond(result):
    return jsonify(result.payload), result.status_code


@directory_bp.route("/api/company", methods=["GET", "PATCH"])
def company_api():
    ctx = current_context()
    if request.method == "PATCH":
        return _respond(_COMPANY_SERVICE.update_profile(get_db(), ctx, _payload()))
    return _respond(_COMPANY_SERVICE.get_profile(get_db(), ctx))


@directory_bp.route("/api/company/users", methods=["GET", "POST"])
def company_users_api():
    ctx = current_context()
    if request.method == "POST":
        return _respond(_COMPANY_SERVICE.create_user(get_db(), ctx, _payload()))
    return _respond(_COMPANY_SERVICE.list_users(get_db(), ctx))


@directory_bp.route("/api/company/users/<int:user_id>", methods=["GET", "PATCH", "DELETE"])
def company_user_detail_api(user_id: int):
    ctx = current_context()
    if request.method == "PATCH":
        return _respond(_COMPANY_SERVICE.update_user(get_db(), ctx, user_id, _payload()))
    if request.method == "DELETE":
        return _respond(_COMPANY_SERVICE.delete_user(get_db(), ctx, user_id))
    return _respond(_COMPANY_SERVICE.get_user(get_db(), ctx, user_id))


@directory_bp.route("/api/roles", methods=["GET"])
def roles_api():
    current_context()
    return _respond(_COMPANY_SERVICE.list_roles(get_db()))


@directory_bp.route("/api/suppliers", methods=["GET", "POST"])
def suppliers_api():
    ctx = current_context()
    if request.method == "POST":
        return _respond(_SUPPLIER_SERVICE.create_supplier(get_db(), ctx, _payload()))
    return _respond(
        _SUPPLIER_SERVICE.search(
            get_db(),
            ctx,
            search=request.args.get("search") or "",
            trade_specialty=request.args.get("trade_specialty") or "",
            page=request.args.get("page"),
        )
    )


@directory_bp.route("/api/suppliers/<int:supplier_id>", methods=["GET", "PATCH", "DELETE"])
def supplier_detail_api(supplier_id: int):
    ctx = current_context()
    if request.method == "PATCH":
        return _respond(_SUPPLIER_SERVICE.update_supplier(get_db(), ctx, supplier_id, _payload()))
    if request.method == "DELETE":
        return _respond(_SUPPLIER_SERVICE.delete_supplier(get_db(), ctx, supplier_id))
    return _respond(_SUPPLIER_SERVICE.get_supplier(get_db(), ctx, supplier_id))


@directory_bp.route("/api/suppliers/<int:supplier_id>/partner", methods=["POST", "DELETE"])
def supplier_partner_api(supplier_id: int):
    ctx = current_context()
    if request.method == "DELETE":
        return _respond(_SUPPLIER_SERVICE.remove_partner(get_db(), ctx, supplier_id))
    return _respond(_SUPPLIER_SERVICE.add_partner(get_db(), ctx, supplier_id, _payload()))


@directory_bp.route("/api/suppliers/<int:supplier_id>/partnership", methods=["PATCH"])
def supplier_partnership_api(supplier_id: int):
    return _respond(_SUPPLIER_SERVICE.update_partnership(get_db(), current_context(), supplier_id, _payload()))

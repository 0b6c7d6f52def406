from __future__ import annotations

from flask import Blueprint, jsonify, request

from flowbuilder.application.catalog_service import CatalogService
from flowbuilder.context import current_context
from flowbuilder.db import get_db


catalog_bp = Blueprint("catalog", __name__)

_CATALOG_SERVICE = CatalogService()


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _respond(result):
    return jsonify(result.payload), result.status_code


@catalog_bp.route("/api/materials", methods=["GET", "POST"])
def materials_api():
    ctx = current_context()
    if request.method == "POST":
        return _respond(_CATALOG_SERVICE.create_material(get_db(), ctx, _payload()))
    return _respond(
        _CATALOG_SERVICE.list_materials(
            get_db(),
            ctx,
            search=request.args.get("search") or "",
            category_id=request.args.get("category_id"),
        )
    )


@catalog_bp.route("/api/materials/<int:material_id>", methods=["GET", "PATCH", "DELETE"])
def material_detail_api(material_id: int):
    ctx = current_context()
    if request.method == "PATCH":
        return _respond(_CATALOG_SERVICE.update_material(get_db(), ctx, material_id, _payload()))
    if request.method == "DELETE":
        return _respond(_CATALOG_SERVICE.delete_material(get_db(), ctx, material_id))
    return _respond(_CATALOG_SERVICE.get_material(get_db(), ctx, material_id))


@catalog_bp.route("/api/categories", methods=["GET", "POST"])
def categories_api():
    ctx = current_context()
    if request.method == "POST":
        return _respond(_CATALOG_SERVICE.create_category(get_db(), ctx, _payload()))
    return _respond(_CATALOG_SERVICE.list_categories(get_db(), ctx))


@catalog_bp.route("/api/categories/<int:category_id>", methods=["PATCH", "DELETE"])
def category_detail_api(category_id: int):
    ctx = current_context()
    if request.method == "DELETE":
        return _respond(_CATALOG_SERVICE.delete_category(get_db(), ctx, category_id))
    return _respond(_CATALOG_SERVICE.update_category(get_db(), ctx, category_id, _payload()))

from __future__ import annotations

from flask import Blueprint, jsonify, request

from flowbuilder.application.dashboard_service import DashboardService
from flowbuilder.application.notification_service import NotificationService
from flowbuilder.context import current_context
from flowbuilder.db import get_db


notification_bp = Blueprint("notifications", __name__)

_NOTIFICATION_SERVICE = NotificationService()
_DASHBOARD_SERVICE = DashboardService()


def _respond(result):
    return jsonify(result.payload), result.status_code


@notification_bp.route("/api/notifications", methods=["GET"])
def notifications_api():
    unread_only = (request.args.get("unread") or "").strip().lower() in {"1", "true", "yes"}
    return _respond(_NOTIFICATION_SERVICE.list_notifications(get_db(), current_context(), unread_only=unread_only))


@notification_bp.route("/api/notifications/unread-count", methods=["GET"])
def notifications_unread_count_api():
    return _respond(_NOTIFICATION_SERVICE.unread_count(get_db(), current_context()))


@notification_bp.route("/api/notifications/<int:notification_id>/read", methods=["POST"])
def notification_read_api(notification_id: int):
    return _respond(_NOTIFICATION_SERVICE.mark_read(get_db(), current_context(), notification_id))


@notification_bp.route("/api/notifications/read-all", methods=["POST"])
def notifications_read_all_api():
    return _respond(_NOTIFICATION_SERVICE.mark_all_read(get_db(), current_context()))


@notification_bp.route("/api/notifications/<int:notification_id>/open", methods=["GET"])
def notification_open_api(notification_id: int):
    return _respond(_NOTIFICATION_SERVICE.open_notification(get_db(), current_context(), notification_id))


@notification_bp.route("/api/dashboard", methods=["GET"])
def dashboard_api():
    return _respond(_DASHBOARD_SERVICE.summary(get_db(), current_context()))

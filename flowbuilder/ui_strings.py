from __future__ import annotations

from typing import Any, Dict, List


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "rfq": [
        {"key": "draft", "label": "Draft", "description": "Being prepared, not yet sent to suppliers."},
        {"key": "open", "label": "Open", "description": "Distributed and accepting quotes."},
        {"key": "closed", "label": "Closed", "description": "No longer accepting quotes."},
    ],
    "rfq_supplier": [
        {"key": "invited", "label": "Invited", "description": "Selected on a draft RFQ."},
        {"key": "pending", "label": "Pending", "description": "Notified, no quote yet."},
        {"key": "submitted", "label": "Submitted", "description": "Quote received."},
        {"key": "declined", "label": "Declined", "description": "Supplier declined to quote."},
    ],
    "quote": [
        {"key": "submitted", "label": "Submitted", "description": "Waiting for the buyer decision."},
        {"key": "awarded", "label": "Awarded", "description": "Selected; a purchase order exists."},
        {"key": "rejected", "label": "Rejected", "description": "Another quote was awarded."},
    ],
    "purchase_order": [
        {"key": "ordered", "label": "Ordered", "description": "Issued to the supplier."},
        {"key": "confirmed", "label": "Confirmed", "description": "Accepted by the supplier."},
        {"key": "shipped", "label": "Shipped", "description": "On its way."},
        {"key": "delivered", "label": "Delivered", "description": "Received by the buyer."},
        {"key": "cancelled", "label": "Cancelled", "description": "Cancelled by the buyer."},
    ],
    "partnership": [
        {"key": "active", "label": "Active", "description": "Approved supplier."},
        {"key": "inactive", "label": "Inactive", "description": "Partnership paused."},
        {"key": "pending", "label": "Pending", "description": "Awaiting approval."},
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "error": {
        "action_invalid": "Invalid action for this operation.",
        "auth_required": "Authentication required.",
        "auth_invalid_credentials": "Invalid email or password.",
        "auth_missing_credentials": "Email and password are required.",
        "email_invalid": "Invalid email format.",
        "email_already_registered": "Email is already registered.",
        "permission_denied": "You do not have permission to perform this action.",
        "not_found": "{entity} not found.",
        "validation_error": "Invalid value for {field}.",
        "field_required": "{field} is required.",
        "positive_number_required": "{field} must be greater than zero.",
        "deadline_invalid": "Deadline must be an ISO-8601 date or datetime.",
        "deadline_in_past": "Deadline must be in the future.",
        "duplicate_material": "Material {material_id} is listed more than once.",
        "materials_required": "Select at least one material with a quantity.",
        "suppliers_required": "Select at least one supplier.",
        "material_not_in_catalog": "Material {material_id} is not in your catalog.",
        "supplier_not_found": "Supplier {company_id} not found.",
        "quote_items_required": "A quote needs at least one item.",
        "quote_item_not_in_rfq": "Material {material_id} is not part of this RFQ.",
        "discount_invalid": "Discount rate must be between 0 and 100.",
        "status_invalid": "Unknown status {status}.",
        "invalid_transition": "Cannot transition from {current} to {requested}",
        "rfq_not_draft_edit": "Only draft RFQs can be edited",
        "rfq_not_draft_delete": "Only draft RFQs can be deleted",
        "rfq_not_draft_distribute": "Only draft RFQs can be distributed",
        "rfq_not_open_close": "Only open RFQs can be closed",
        "rfq_distribution_incomplete": "Cannot distribute RFQ without materials and suppliers. Please add at least one of each.",
        "rfq_not_accepting_quotes": "This RFQ is not accepting quotes",
        "rfq_deadline_passed": "RFQ deadline has passed",
        "rfq_not_invited": "Your company was not invited to this RFQ",
        "rfq_not_awardable": "Quotes can only be awarded on open or closed RFQs",
        "quote_already_submitted": "You have already submitted a quote for this RFQ",
        "quote_awarded_edit": "Awarded quotes cannot be edited",
        "quote_awarded_delete": "Awarded quotes cannot be deleted",
        "quote_not_submitted": "Only submitted quotes can be awarded",
        "rfq_already_awarded": "This RFQ has already been awarded",
        "po_already_exists": "PO already exists for this quote",
        "po_supplier_only": "Only suppliers can update status",
        "po_buyer_only": "Only the buying company can cancel a purchase order",
        "po_notes_buyer_only": "Only the buying company can edit purchase order notes",
        "po_cancel_delivered": "Cannot cancel a delivered PO",
        "po_already_cancelled": "Purchase order is already cancelled",
        "project_has_rfqs": "Cannot delete project: it has RFQs that are no longer drafts",
        "material_in_use": "Cannot delete material: it is used in active RFQs",
        "material_referenced": "Cannot delete material: it is referenced by closed RFQs or quotes",
        "category_name_taken": "Category name already exists",
        "category_has_materials": "Cannot delete category: it has materials",
        "supplier_has_active_quotes": "Cannot delete supplier: has active quotes",
        "supplier_not_partner": "This supplier is not one of your partners",
        "supplier_already_partner": "This supplier is already a partner",
        "supplier_not_managed": "Only the company that registered this supplier can change it",
        "supplier_shared": "Cannot delete supplier: other companies work with it",
        "user_delete_self": "Cannot delete your own account",
        "user_delete_last": "Cannot delete the only user account for this company",
        "user_has_activity": "Cannot delete user: has created RFQs or POs",
        "role_invalid": "Unknown role {role}.",
        "conflict": "The operation conflicts with existing data.",
        "rate_limit_exceeded": "Too many requests. Try again shortly.",
        "unexpected_error": "The operation could not be completed.",
    },
}


NOTIFICATION_TEMPLATES: Dict[str, str] = {
    "po_status_updated": "Purchase Order #{id} status changed to {status}",
    "rfq_invite": "You have been invited to quote on RFQ #{id}: {name}",
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def get_message(category: str, key: str, default: str | None = None, **params: Any) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if not message:
        if default is None:
            return key
        message = default
    if not params:
        return message
    try:
        return message.format(**params)
    except (KeyError, IndexError, ValueError):
        return message


def error_message(key: str, default: str | None = None, **params: Any) -> str:
    return get_message("error", key, default, **params)


def notification_message(kind: str, **params: Any) -> str:
    template = NOTIFICATION_TEMPLATES.get(kind)
    if not template:
        return kind
    return template.format(**params)

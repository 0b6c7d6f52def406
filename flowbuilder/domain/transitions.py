from __future__ import annotations

from typing import Dict, FrozenSet


RFQ_STATUSES = ("draft", "open", "closed")
PO_STATUSES = ("ordered", "confirmed", "shipped", "delivered", "cancelled")
QUOTE_STATUSES = ("submitted", "awarded", "rejected")


RFQ_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "draft": frozenset({"open"}),
    "open": frozenset({"closed"}),
    "closed": frozenset(),
}


# Forward progression only. Cancellation is handled by can_cancel_po.
PO_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "ordered": frozenset({"confirmed"}),
    "confirmed": frozenset({"shipped"}),
    "shipped": frozenset({"delivered"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}

PO_CANCELLABLE: FrozenSet[str] = frozenset({"ordered", "confirmed", "shipped"})


# Which RFQ statuses allow each action.
RFQ_ACTION_STATUSES: Dict[str, FrozenSet[str]] = {
    "edit": frozenset({"draft"}),
    "delete": frozenset({"draft"}),
    "distribute": frozenset({"draft"}),
    "close": frozenset({"open"}),
    "submit_quote": frozenset({"open"}),
    "award": frozenset({"open", "closed"}),
}

QUOTE_MUTABLE: FrozenSet[str] = frozenset({"submitted", "rejected"})
QUOTE_AWARDABLE: FrozenSet[str] = frozenset({"submitted"})


def can_transition_rfq(current: str | None, requested: str | None) -> bool:
    return str(requested or "") in RFQ_TRANSITIONS.get(str(current or ""), frozenset())


def can_transition_po(current: str | None, requested: str | None) -> bool:
    return str(requested or "") in PO_TRANSITIONS.get(str(current or ""), frozenset())


def can_cancel_po(current: str | None) -> bool:
    return str(current or "") in PO_CANCELLABLE


def rfq_action_allowed(status: str | None, action: str) -> bool:
    return str(status or "") in RFQ_ACTION_STATUSES.get(action, frozenset())


def quote_is_mutable(status: str | None) -> bool:
    return str(status or "") in QUOTE_MUTABLE


def quote_is_awardable(status: str | None) -> bool:
    return str(status or "") in QUOTE_AWARDABLE


def next_po_status(current: str | None) -> str | None:
    allowed = PO_TRANSITIONS.get(str(current or ""), frozenset())
    return next(iter(allowed), None)


def allowed_rfq_actions(status: str | None) -> list[str]:
    return [action for action, statuses in RFQ_ACTION_STATUSES.items() if str(status or "") in statuses]


def can_edit_rfq(status: str | None) -> bool:
    return rfq_action_allowed(status, "edit")


def can_delete_rfq(status: str | None) -> bool:
    return rfq_action_allowed(status, "delete")

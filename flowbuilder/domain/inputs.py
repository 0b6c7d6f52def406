"""Boundary parsing for request payloads.

Form clients send selections either as lists or as objects keyed by id
(``{"5": {"selected": true, "quantity": 100}}``). Both shapes are resolved
here into the typed structures in ``flowbuilder.domain.contracts`` so the
services never branch on payload shape.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Tuple

from flowbuilder.domain.contracts import (
    AuthLoginInput,
    AuthRegisterInput,
    MaterialLine,
    QuoteInput,
    QuoteLine,
    RfqInput,
    SupplierCreateInput,
)
from flowbuilder.errors import ValidationError


_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_FALSY_FLAGS = {"", "0", "false", "off", "no", "none", "null"}
MAX_INTEGER = 2**63 - 1


def _invalid(field: str, code: str = "validation_error", **params: Any) -> ValidationError:
    return ValidationError(
        code=code,
        message_key=code,
        payload={"field": field},
        params={"field": field, **params},
    )


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def required_text(value: Any, field: str) -> str:
    text = optional_text(value)
    if not text:
        raise _invalid(field, "field_required")
    return text


def parse_email(value: Any, field: str = "email") -> str:
    email = required_text(value, field).lower()
    if not _EMAIL_PATTERN.match(email):
        raise _invalid(field, "email_invalid")
    return email


def parse_number(value: Any, field: str) -> float:
    if isinstance(value, bool) or value is None:
        raise _invalid(field, "field_required" if value is None else "validation_error")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise _invalid(field, "field_required")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise _invalid(field) from None
    if math.isnan(number) or math.isinf(number):
        raise _invalid(field)
    return number


def parse_positive_number(value: Any, field: str) -> float:
    number = parse_number(value, field)
    if number <= 0:
        raise _invalid(field, "positive_number_required")
    return number


def parse_positive_int(value: Any, field: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, str) and value.strip().isdecimal():
        try:
            number = int(value.strip())
        except ValueError:
            raise _invalid(field) from None
    else:
        parsed = parse_number(value, field)
        if not parsed.is_integer():
            raise _invalid(field)
        number = int(parsed)
    if number <= 0:
        raise _invalid(field, "positive_number_required")
    # Ids and durations are stored as signed 64-bit integers.
    if number > MAX_INTEGER:
        raise _invalid(field)
    return number


def parse_optional_int(value: Any, field: str) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_positive_int(value, field)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored or submitted timestamp into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _to_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        parsed = date.fromisoformat(text)
    except ValueError:
        return None
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


def format_timestamp(value: datetime) -> str:
    return _to_utc(value).replace(microsecond=0).isoformat()


def parse_deadline(value: Any, *, now: datetime | None = None, require_future: bool = True) -> str:
    if optional_text(value) is None and not isinstance(value, (date, datetime)):
        raise _invalid("deadline", "field_required")
    deadline = parse_timestamp(value)
    if deadline is None:
        raise _invalid("deadline", "deadline_invalid")
    reference = _to_utc(now) if now else datetime.now(timezone.utc)
    if require_future and deadline <= reference:
        raise _invalid("deadline", "deadline_in_past")
    return format_timestamp(deadline)


def _is_selected(flag: Any) -> bool:
    if isinstance(flag, str):
        return flag.strip().lower() not in _FALSY_FLAGS
    return bool(flag)


def parse_material_lines(raw: Any) -> Tuple[MaterialLine, ...]:
    entries: List[Tuple[Any, Any]] = []
    if raw is None:
        raw = []
    if isinstance(raw, Mapping):
        for key, value in raw.items():
            if isinstance(value, Mapping):
                if "selected" in value and not _is_selected(value.get("selected")):
                    continue
                entries.append((key, value.get("quantity")))
            else:
                if value is None or (isinstance(value, str) and not value.strip()):
                    continue
                entries.append((key, value))
    elif isinstance(raw, list):
        for value in raw:
            if not isinstance(value, Mapping):
                raise _invalid("materials")
            entries.append((value.get("material_id", value.get("id")), value.get("quantity")))
    else:
        raise _invalid("materials")

    lines: List[MaterialLine] = []
    seen: set[int] = set()
    for raw_id, raw_quantity in entries:
        material_id = parse_positive_int(raw_id, "materials.material_id")
        if material_id in seen:
            raise ValidationError(
                code="duplicate_material",
                message_key="duplicate_material",
                payload={"field": "materials", "material_id": material_id},
                params={"material_id": material_id},
            )
        seen.add(material_id)
        quantity = parse_positive_number(raw_quantity, "materials.quantity")
        lines.append(MaterialLine(material_id=material_id, quantity=quantity))
    return tuple(lines)


def parse_supplier_ids(raw: Any) -> Tuple[int, ...]:
    if raw is None:
        return ()
    candidates: List[Any] = []
    if isinstance(raw, Mapping):
        candidates = [key for key, flag in raw.items() if _is_selected(flag)]
    elif isinstance(raw, list):
        for value in raw:
            if isinstance(value, Mapping):
                value = value.get("company_id", value.get("id"))
            candidates.append(value)
    else:
        candidates = [raw]

    supplier_ids: List[int] = []
    for candidate in candidates:
        supplier_id = parse_positive_int(candidate, "suppliers")
        if supplier_id not in supplier_ids:
            supplier_ids.append(supplier_id)
    return tuple(supplier_ids)


def parse_quote_lines(raw: Any) -> Tuple[QuoteLine, ...]:
    entries: List[Dict[str, Any]] = []
    if raw is None:
        raw = []
    if isinstance(raw, Mapping):
        for key, value in raw.items():
            if not isinstance(value, Mapping):
                raise _invalid("items")
            if "selected" in value and not _is_selected(value.get("selected")):
                continue
            entries.append({**value, "material_id": key})
    elif isinstance(raw, list):
        for value in raw:
            if not isinstance(value, Mapping):
                raise _invalid("items")
            entries.append(dict(value))
    else:
        raise _invalid("items")

    lines: List[QuoteLine] = []
    seen: set[int] = set()
    for entry in entries:
        material_id = parse_positive_int(entry.get("material_id", entry.get("material")), "items.material_id")
        if material_id in seen:
            raise ValidationError(
                code="duplicate_material",
                message_key="duplicate_material",
                payload={"field": "items", "material_id": material_id},
                params={"material_id": material_id},
            )
        seen.add(material_id)
        discount_raw = entry.get("discount_rate")
        discount = 0.0 if discount_raw in (None, "") else parse_number(discount_raw, "items.discount_rate")
        if discount < 0 or discount >= 100:
            raise ValidationError(
                code="discount_invalid",
                message_key="discount_invalid",
                payload={"field": "items.discount_rate"},
            )
        lines.append(
            QuoteLine(
                material_id=material_id,
                price=parse_positive_number(entry.get("price"), "items.price"),
                quantity=parse_positive_number(entry.get("quantity"), "items.quantity"),
                discount_rate=discount,
                external_ref=optional_text(entry.get("external_ref")),
            )
        )
    return tuple(lines)


def parse_rfq_input(payload: Mapping[str, Any], *, now: datetime | None = None) -> RfqInput:
    name = required_text(payload.get("name"), "name")
    deadline = parse_deadline(payload.get("deadline"), now=now)
    materials = parse_material_lines(payload.get("materials"))
    if not materials:
        raise ValidationError(code="materials_required", message_key="materials_required", payload={"field": "materials"})
    suppliers = parse_supplier_ids(payload.get("suppliers"))
    if not suppliers:
        raise ValidationError(code="suppliers_required", message_key="suppliers_required", payload={"field": "suppliers"})
    return RfqInput(
        name=name,
        deadline=deadline,
        materials=materials,
        suppliers=suppliers,
        description=optional_text(payload.get("description")),
    )


def parse_quote_input(payload: Mapping[str, Any]) -> QuoteInput:
    duration = parse_positive_int(payload.get("duration"), "duration")
    items = parse_quote_lines(payload.get("items"))
    if not items:
        raise ValidationError(code="quote_items_required", message_key="quote_items_required", payload={"field": "items"})
    return QuoteInput(duration=duration, items=items, notes=optional_text(payload.get("notes")))


def parse_login_input(payload: Mapping[str, Any]) -> AuthLoginInput:
    email = optional_text(payload.get("email"))
    password = str(payload.get("password") or "")
    if not email or not password:
        raise ValidationError(code="auth_missing_credentials", message_key="auth_missing_credentials")
    return AuthLoginInput(email=parse_email(email), password=password)


def parse_register_input(payload: Mapping[str, Any]) -> AuthRegisterInput:
    password = str(payload.get("password") or "")
    if not password:
        raise _invalid("password", "field_required")
    return AuthRegisterInput(
        company_name=required_text(payload.get("company_name"), "company_name"),
        name=required_text(payload.get("name"), "name"),
        email=parse_email(payload.get("email")),
        password=password,
    )


def parse_supplier_create_input(payload: Mapping[str, Any]) -> SupplierCreateInput:
    name = required_text(payload.get("name"), "name")
    return SupplierCreateInput(
        name=name,
        contact_name=optional_text(payload.get("contact_name")) or name,
        email=parse_email(payload.get("email")),
        address=optional_text(payload.get("address")),
        phone=optional_text(payload.get("phone")),
        trade_specialty=optional_text(payload.get("trade_specialty")),
        description=optional_text(payload.get("description")),
        notes=optional_text(payload.get("notes")),
    )

from __future__ import annotations

import re
from typing import Any

from .errors import ValidationError
from .rules import DEFAULT_MERCHANT_STATUS, NOTIFICATION_TYPES


# Tanzanian M-Pesa numbers: +255 / 0255 / 255 followed by nine digits
MPESA_PHONE_RE = re.compile(r"^(\+255|0255|255)([0-9]{9})$")

# Upper bound for stock counts; anything larger is a typo, not a shelf
MAX_STOCK_UNITS = 1_000_000

MAX_PREP_TIME_MINUTES = 24 * 60


def require_fields(payload: dict, fields: tuple[str, ...]) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def coerce_int(name: str, value: Any) -> int:
    """
    Strict integer coercion: rejects floats, bools and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def validate_mpesa_phone(phone: str | None) -> str:
    """Returns the phone with whitespace removed."""
    if not phone or not str(phone).strip():
        raise ValidationError("Please enter an M-Pesa phone number")
    compact = re.sub(r"\s", "", str(phone))
    if not MPESA_PHONE_RE.match(compact):
        raise ValidationError(
            "Please enter a valid M-Pesa phone number (e.g., +255123456789 or 255123456789)"
        )
    return compact


def validate_amount(value: Any) -> int:
    amount = coerce_int("amount", value)
    if amount <= 0:
        raise ValidationError("amount must be greater than zero")
    return amount


def validate_stock_levels(current_stock: Any, minimum_stock: Any, maximum_stock: Any) -> tuple[int, int, int]:
    current = coerce_int("current_stock", current_stock)
    minimum = coerce_int("minimum_stock", minimum_stock)
    maximum = coerce_int("maximum_stock", maximum_stock)
    if current < 0 or minimum < 0:
        raise ValidationError("stock levels cannot be negative")
    if maximum <= 0:
        raise ValidationError("maximum_stock must be greater than zero")
    if current > MAX_STOCK_UNITS or maximum > MAX_STOCK_UNITS:
        raise ValidationError(f"stock levels cannot exceed {MAX_STOCK_UNITS}")
    return current, minimum, maximum


def validate_status_updates(updates: dict) -> dict:
    """
    Cleans a merchant status patch: only known keys, typed values.
    """
    if not updates:
        raise ValidationError("No status fields to update")
    unknown = set(updates) - set(DEFAULT_MERCHANT_STATUS)
    if unknown:
        raise ValidationError(f"Unknown status field(s): {', '.join(sorted(unknown))}")

    cleaned: dict = {}
    for key, value in updates.items():
        if key == "prep_time":
            minutes = coerce_int("prep_time", value)
            if minutes <= 0 or minutes > MAX_PREP_TIME_MINUTES:
                raise ValidationError(f"prep_time must be between 1 and {MAX_PREP_TIME_MINUTES} minutes")
            cleaned[key] = minutes
        else:
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be a boolean")
            cleaned[key] = value
    return cleaned


def validate_notification(payload: dict) -> dict:
    require_fields(payload, ("title", "message"))
    kind = payload.get("type") or "message"
    if not isinstance(kind, str):
        raise ValidationError("type must be a string")
    kind = kind.strip().lower()
    if kind not in NOTIFICATION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(sorted(NOTIFICATION_TYPES))}")
    return {
        "title": str(payload["title"]).strip(),
        "message": str(payload["message"]).strip(),
        "type": kind,
        "admin_id": payload.get("admin_id"),
    }


PROFILE_FIELDS = ("merchant_name", "merchant_email", "merchant_phone", "merchant_location")


def validate_profile_updates(updates: dict) -> dict:
    """
    Cleans a merchant profile patch. merchant_name cannot be blank; the
    contact fields may be cleared with an empty string or null.
    """
    if not updates:
        raise ValidationError("No profile fields to update")
    unknown = set(updates) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown profile field(s): {', '.join(sorted(unknown))}")

    cleaned: dict = {}
    for key, value in updates.items():
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be a string")
        value = (value or "").strip()
        if key == "merchant_name" and not value:
            raise ValidationError("merchant_name cannot be blank")
        if key == "merchant_email" and value and "@" not in value:
            raise ValidationError("merchant_email must be an email address")
        cleaned[key] = value or None
    return cleaned


def validate_offer(payload: dict) -> dict:
    """An offer is a notification of type offer; description is its message."""
    message = payload.get("description")
    if message in (None, ""):
        message = payload.get("message")
    return validate_notification({
        "title": payload.get("title"),
        "message": message,
        "type": "offer",
        "admin_id": payload.get("admin_id"),
    })

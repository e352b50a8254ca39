from __future__ import annotations

from typing import Any

from .errors import ServiceError

# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

ADDRESS_FIELDS = ("full_name", "street", "city", "state", "zip_code", "country")


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_fields(payload: dict, *fields: str) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"missing": missing})


def parse_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion.

    Rejects bools, floats, decimals and scientific notation ("1e3").
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}")
    return result


def parse_positive_int(value: Any, field: str) -> int:
    return parse_int(value, field, minimum=1)


def parse_price_cents(value: Any, field: str = "price_cents") -> int:
    return parse_int(value, field, minimum=0, maximum=MAX_PRICE_CENTS)


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no"}:
        return False
    raise ValidationError(f"{field} must be a boolean")


def parse_optional_str(value: Any, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return value or None


def parse_address(value: Any, field: str) -> dict:
    """Normalize a postal address; every field except phone is required."""
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object")
    missing = [f for f in ADDRESS_FIELDS if not str(value.get(f) or "").strip()]
    if missing:
        raise ValidationError(f"{field} is missing: {', '.join(missing)}", {"missing": missing})
    address = {f: str(value[f]).strip() for f in ADDRESS_FIELDS}
    if value.get("phone"):
        address["phone"] = str(value["phone"]).strip()
    return address


def parse_cart_lines(value: Any) -> list[dict]:
    """Parse [{product_id, quantity}, ...] from a request body."""
    if not isinstance(value, list) or not value:
        raise ValidationError("lines must be a non-empty list")
    lines = []
    for idx, raw in enumerate(value):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{idx}] must be an object")
        lines.append({
            "product_id": parse_positive_int(raw.get("product_id"), f"lines[{idx}].product_id"),
            "quantity": parse_positive_int(raw.get("quantity"), f"lines[{idx}].quantity"),
        })
    return lines

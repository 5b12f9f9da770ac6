"""
Form parsing helpers shared by the single-page ad forms.
"""
from __future__ import annotations

import math
import re
from datetime import date
from typing import Any


class FormValueError(ValueError):
    pass


def clean_text(value: Any, max_len: int | None = None) -> str | None:
    text = (str(value) if value is not None else "").strip()
    if not text:
        return None
    if max_len is not None and len(text) > max_len:
        raise FormValueError(f"Maximum is {max_len} characters")
    return text


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD; blank -> None."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError as e:
        raise FormValueError("Enter a valid date") from e


def parse_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        n = float(value)
    else:
        try:
            n = float(str(value).strip().replace(",", "."))
        except ValueError as e:
            raise FormValueError("Enter a valid number") from e
    if not math.isfinite(n):
        raise FormValueError("Enter a valid number")
    return n


def parse_int(value: Any) -> int | None:
    n = parse_float(value)
    if n is None:
        return None
    if n != int(n):
        raise FormValueError("Must be a whole number")
    return int(n)


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "on", "yes")


def parse_list(value: Any) -> list[str]:
    """Accepts a list (repeated inputs) or a comma/newline separated string."""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    out: list[str] = []
    for item in items:
        for part in re.split(r"[,\n]", str(item)):
            part = part.strip()
            if part and part not in out:
                out.append(part)
    return out


def form_payload(form: Any, fields: tuple[str, ...], list_fields: tuple[str, ...] = ()) -> dict[str, Any]:
    """Plain dict from a werkzeug MultiDict; list fields keep every submitted value."""
    payload: dict[str, Any] = {}
    for name in fields:
        if name in list_fields and hasattr(form, "getlist"):
            payload[name] = form.getlist(name)
        else:
            payload[name] = form.get(name)
    return payload

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from privacyhub.core.config import get_settings


T = TypeVar("T")


class CursorError(ValueError):
    # Raise for malformed or tampered cursor tokens.
    pass


@dataclass
class Page(Generic[T]):
    # A page of rows plus the opaque token for the next page (None on the last page).
    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None


def _serialize_value(value: Any) -> Any:
    # Convert values to JSON-friendly formats; naive datetimes are stored as UTC.
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    return value


def _parse_value(value: Any) -> Any:
    # Convert serialized cursor values back into comparable types.
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return value
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed
    return value


def build_cursor_payload(
    *,
    scope: str,
    organization_id: str,
    sort: str,
    sort_value: Any,
    row_id: Any,
) -> dict[str, Any]:
    # Persist the last row values to build an opaque cursor token.
    return {
        "v": 1,
        "scope": scope,
        "organization_id": organization_id,
        "sort": sort,
        "value": _serialize_value(sort_value),
        "id": row_id,
    }


def encode_cursor(payload: dict[str, Any], secret: str) -> str:
    # Sign cursor payloads to prevent client-side tampering.
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    encoded = base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")
    return f"{encoded}.{signature}"


def decode_cursor(token: str, secret: str) -> dict[str, Any]:
    # Verify cursor signatures and return the decoded payload.
    try:
        encoded, signature = token.split(".", 1)
    except ValueError as exc:
        raise CursorError("Invalid cursor format") from exc
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("utf-8"))
    except (ValueError, binascii.Error) as exc:
        raise CursorError("Invalid cursor encoding") from exc
    expected = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature):
        raise CursorError("Invalid cursor signature")
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise CursorError("Invalid cursor payload") from exc
    if not isinstance(payload, dict):
        raise CursorError("Invalid cursor payload")
    return payload


def validate_cursor_payload(
    *,
    payload: dict[str, Any],
    expected_scope: str,
    expected_organization_id: str,
    expected_sort: str,
) -> dict[str, Any]:
    # Ensure cursor metadata matches the current request context.
    if payload.get("scope") != expected_scope:
        raise CursorError("Cursor scope mismatch")
    if payload.get("organization_id") != expected_organization_id:
        raise CursorError("Cursor organization mismatch")
    if payload.get("sort") != expected_sort:
        raise CursorError("Cursor sort mismatch")
    if "value" not in payload:
        raise CursorError("Cursor value missing")
    if "id" not in payload:
        raise CursorError("Cursor id missing")
    return payload


def build_cursor_filter(
    *,
    sort_column: ColumnElement[Any],
    id_column: ColumnElement[Any],
    cursor_value: Any,
    row_id: Any,
) -> ColumnElement[bool]:
    # Keyset filter for (sort desc, id desc): strictly older, or same instant with a smaller id.
    parsed = _parse_value(cursor_value)
    return or_(
        sort_column < parsed,
        and_(sort_column == parsed, id_column < row_id),
    )


def clamp_limit(limit: int | None) -> int:
    settings = get_settings()
    if limit is None:
        return settings.default_page_size
    return max(1, min(int(limit), settings.max_page_size))


async def paginate(
    session: AsyncSession,
    stmt: Select,
    *,
    model,
    scope: str,
    organization_id: str,
    cursor: str | None = None,
    limit: int | None = None,
    sort_attr: str = "created_at",
) -> Page:
    """Apply newest-first keyset pagination to ``stmt``.

    Fetches ``limit + 1`` rows; the extra row only signals that another page
    exists. Cursors are bound to the scope, organization and sort so a token
    from one listing cannot be replayed against another.
    """
    settings = get_settings()
    page_size = clamp_limit(limit)
    sort_column = getattr(model, sort_attr)
    sort = f"-{sort_attr},-id"
    if cursor:
        payload = validate_cursor_payload(
            payload=decode_cursor(cursor, settings.cursor_secret),
            expected_scope=scope,
            expected_organization_id=organization_id,
            expected_sort=sort,
        )
        stmt = stmt.where(
            build_cursor_filter(
                sort_column=sort_column,
                id_column=model.id,
                cursor_value=payload["value"],
                row_id=payload["id"],
            )
        )
    stmt = stmt.order_by(sort_column.desc(), model.id.desc()).limit(page_size + 1)
    result = await session.execute(stmt)
    rows = list(result.scalars().all())
    next_cursor = None
    if len(rows) > page_size:
        rows = rows[:page_size]
        last = rows[-1]
        next_cursor = encode_cursor(
            build_cursor_payload(
                scope=scope,
                organization_id=organization_id,
                sort=sort,
                sort_value=getattr(last, sort_attr),
                row_id=last.id,
            ),
            settings.cursor_secret,
        )
    return Page(items=rows, next_cursor=next_cursor)

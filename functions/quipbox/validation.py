"""
Request validation helpers shared by the routes.
"""

from __future__ import annotations

import json
import secrets
from typing import Any, Optional

from fastapi import Depends, Header, Request
from pydantic import TypeAdapter, ValidationError

from quipbox.config import Settings, get_settings
from quipbox.db import parse_message_id
from quipbox.errors import InvalidInput, Unauthorized
from quipbox.kinds import RESPONSE_KIND_VALUES, ResponseKind
from quipbox.schemas import MessageIn, UserUpsertPayload

MAX_ID_LENGTH = 128
MISSING_MESSAGE_FIELDS = "Fields required: userId, category, text"

_message_batch = TypeAdapter(list[MessageIn])


def require_admin(
    x_api_key: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless x-api-key matches the configured secret."""
    expected = settings.admin_api_key
    if not expected or not x_api_key:
        raise Unauthorized()
    if not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        raise Unauthorized()


def clean_id(raw: Optional[str], error: str = "Invalid or missing 'id'") -> str:
    value = (raw or "").strip()
    if not value or len(value) > MAX_ID_LENGTH:
        raise InvalidInput(error)
    return value


def clean_message_id(raw: Optional[str]) -> str:
    value = clean_id(raw, "Invalid or missing message 'id'")
    parsed = parse_message_id(value)
    if parsed is None:
        raise InvalidInput("Invalid message id format")
    return parsed


def clean_category(raw: Optional[str]) -> Optional[str]:
    value = (raw or "").strip()
    return value or None


async def read_json_body(request: Request, *, required: bool) -> Any:
    raw = await request.body()
    if not raw.strip():
        if required:
            raise InvalidInput("Missing body")
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise InvalidInput("Invalid JSON body") from None


def parse_message_batch(payload: Any) -> list[MessageIn]:
    """Validate a single document or a list of them; all or nothing."""
    docs = payload if isinstance(payload, list) else [payload]
    if not docs:
        raise InvalidInput(MISSING_MESSAGE_FIELDS)
    try:
        return _message_batch.validate_python(docs)
    except ValidationError:
        raise InvalidInput(MISSING_MESSAGE_FIELDS) from None


def parse_response_setting(payload: Any) -> ResponseKind:
    if payload is None:
        return ResponseKind.DEFAULT
    try:
        body = UserUpsertPayload.model_validate(payload)
    except ValidationError:
        raise InvalidInput("Invalid response kind") from None
    if body.response is None:
        return ResponseKind.DEFAULT
    if body.response not in RESPONSE_KIND_VALUES:
        raise InvalidInput("Invalid response kind")
    return ResponseKind(body.response)


# Route dependencies. Declared ahead of get_db_client so bad input is
# rejected before the store is acquired.


def valid_user_id(user_id: str) -> str:
    return clean_id(user_id)


def valid_message_id(message_id: str) -> str:
    return clean_message_id(message_id)


async def message_batch(request: Request) -> list[MessageIn]:
    return parse_message_batch(await read_json_body(request, required=True))


async def response_setting(request: Request) -> ResponseKind:
    return parse_response_setting(await read_json_body(request, required=False))

"""
HTTP routes for the quipbox API.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from quipbox.config import Settings, get_settings
from quipbox.db import DbClient, parse_message_id
from quipbox.dependencies import get_db_client
from quipbox.errors import NotFound, NotImplementedKind
from quipbox.kinds import ResponseKind
from quipbox.schemas import (
    HealthResponse,
    InsertMessagesResponse,
    MessageIn,
    UserUpsertResponse,
)
from quipbox.validation import (
    clean_category,
    message_batch,
    require_admin,
    response_setting,
    valid_message_id,
    valid_user_id,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(settings: Settings = Depends(get_settings)):
    return HealthResponse(ok=True, mock=settings.use_in_memory_backends)


@router.get("/messages/{message_id}")
async def get_message(
    key: str = Depends(valid_message_id),
    db: DbClient = Depends(get_db_client),
):
    message = await db.get_message(key)
    if not message:
        raise NotFound("Message not found")
    return {"message": message.as_dict()}


@router.get("/profile/{user_id}")
async def get_profile(
    key: str = Depends(valid_user_id),
    db: DbClient = Depends(get_db_client),
):
    user = await db.get_user(key)
    if not user:
        raise NotFound("User not found")
    if not user.messages_created:
        return {"user": user.as_dict(), "messages": []}

    message_ids = []
    for ref in user.messages_created:
        parsed = parse_message_id(ref)
        if parsed is None:
            logger.warning("Skipping malformed message reference %r on user %s", ref, key)
            continue
        message_ids.append(parsed)

    messages = await db.get_messages(message_ids)
    return {
        "user": user.as_dict(),
        "messages": [message.as_dict() for message in messages],
    }


@router.post(
    "/admin/messages",
    response_model=InsertMessagesResponse,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
async def admin_post_messages(
    docs: list[MessageIn] = Depends(message_batch),
    db: DbClient = Depends(get_db_client),
):
    """
    Insert one message or a batch, then append the new ids to each author's
    messagesCreated list. The back-reference step is best effort: users that
    do not exist are skipped and failures there do not undo the insert.
    """
    inserted_ids = await db.insert_messages([doc.to_new_message() for doc in docs])

    ids_by_user: dict[str, list[str]] = {}
    for doc, message_id in zip(docs, inserted_ids):
        ids_by_user.setdefault(doc.user_id, []).append(message_id)

    results = await asyncio.gather(
        *(
            db.append_messages_created(user_id, message_ids)
            for user_id, message_ids in ids_by_user.items()
        ),
        return_exceptions=True,
    )
    users_updated = 0
    for user_id, result in zip(ids_by_user, results):
        if isinstance(result, Exception):
            logger.warning(
                "Back-reference update failed for user %s: %s", user_id, result
            )
        elif result:
            users_updated += 1

    logger.info(
        "Inserted %d messages, updated %d users", len(inserted_ids), users_updated
    )
    return InsertMessagesResponse(
        inserted_count=len(inserted_ids),
        inserted_ids=inserted_ids,
        users_updated=users_updated,
    )


@router.put(
    "/admin/users/{user_id}",
    response_model=UserUpsertResponse,
    dependencies=[Depends(require_admin)],
)
async def admin_put_user(
    key: str = Depends(valid_user_id),
    kind: ResponseKind = Depends(response_setting),
    db: DbClient = Depends(get_db_client),
):
    await db.upsert_user_response(key, kind.value)
    return UserUpsertResponse(id=key, response=kind.value)


@router.get("/{user_id}")
async def get_entry(
    response: Response,
    key: str = Depends(valid_user_id),
    category: Optional[str] = Query(default=None),
    db: DbClient = Depends(get_db_client),
):
    """Serve one random active message for the user, per their response kind."""
    category = clean_category(category)
    user = await db.get_user(key)
    if not user:
        raise NotFound("User not found")

    stored = user.kind
    if stored.kind is ResponseKind.DEFAULT:
        message = await db.sample_active_message(user.user_id, category)
        if not message:
            raise NotFound("No active messages for this user")
        response.headers["Cache-Control"] = "no-store"
        return {"message": message.as_entry()}
    if stored.kind is ResponseKind.STATIC:
        raise NotImplementedKind("static not implemented yet")
    # redirect, json and unknown stored values
    raise NotImplementedKind(f"Response type not implemented: {stored.raw}")

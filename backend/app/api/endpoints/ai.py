from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.clients import get_ai_client
from app.core.database import get_db
from app.core.security import CurrentUser, require_active_user
from app.core.settings import settings
from app.services import credit_ledger
from app.services.ai.client import AIServiceError, OpenAIClient

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    prompt: str


def _require_remaining_credits(db: Session, user: CurrentUser) -> None:
    # Metered clients stop ticking at zero; refuse new work for them too.
    if credit_ledger.get_balance(db, user.id) <= 0:
        raise HTTPException(status_code=402, detail="No credits remaining")


@router.post("/whisper")
async def whisper(
    audio: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_active_user),
    ai: OpenAIClient = Depends(get_ai_client),
) -> dict:
    await run_in_threadpool(_require_remaining_credits, db, current_user)
    if audio is None:
        return {"text": ""}
    if audio.size is not None and audio.size > settings.max_audio_bytes:
        raise HTTPException(status_code=413, detail="Audio file too large")

    content = await audio.read()
    if not content:
        return {"text": ""}
    if len(content) > settings.max_audio_bytes:
        raise HTTPException(status_code=413, detail="Audio file too large")

    try:
        text = await ai.transcribe(
            filename=audio.filename or "audio.webm",
            content=content,
            content_type=audio.content_type,
        )
    except AIServiceError as exc:
        logger.warning("ai.whisper_failed account_id=%s error=%s", current_user.id, exc)
        raise HTTPException(status_code=502, detail="Transcription failed")
    return {"text": text}


@router.post("/chat")
async def chat(
    body: ChatRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_active_user),
    ai: OpenAIClient = Depends(get_ai_client),
) -> StreamingResponse:
    prompt = (body.prompt or "").strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")
    await run_in_threadpool(_require_remaining_credits, db, current_user)

    chunks = ai.stream_chat(prompt)
    # Pull the first delta before answering so upstream failures become a 502.
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = ""
    except AIServiceError as exc:
        logger.warning("ai.chat_failed account_id=%s error=%s", current_user.id, exc)
        raise HTTPException(status_code=502, detail="Chat completion failed")

    async def body_iter() -> AsyncIterator[str]:
        if first:
            yield first
        try:
            async for text in chunks:
                yield text
        except AIServiceError:
            logger.exception("ai.chat_stream_interrupted account_id=%s", current_user.id)

    return StreamingResponse(body_iter(), media_type="text/plain; charset=utf-8")

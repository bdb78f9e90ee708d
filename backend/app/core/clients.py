import logging

from fastapi import FastAPI, HTTPException, Request

from app.services.ai.client import AIDisabledError, OpenAIClient, build_ai_client
from app.services.identity import SupabaseAuthClient, build_identity_client

logger = logging.getLogger(__name__)


def init_clients(app: FastAPI) -> None:
    app.state.identity_client = build_identity_client()
    try:
        app.state.ai_client = build_ai_client()
    except AIDisabledError as exc:
        logger.warning("ai.disabled reason=%s", exc)
        app.state.ai_client = None


async def close_clients(app: FastAPI) -> None:
    identity = getattr(app.state, "identity_client", None)
    if identity is not None:
        identity.close()
        app.state.identity_client = None
    ai = getattr(app.state, "ai_client", None)
    if ai is not None:
        await ai.aclose()
        app.state.ai_client = None


def get_identity_client(request: Request) -> SupabaseAuthClient:
    client = getattr(request.app.state, "identity_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Identity provider is not configured")
    return client


def get_ai_client(request: Request) -> OpenAIClient:
    client = getattr(request.app.state, "ai_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="AI service is not configured")
    return client

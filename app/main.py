from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from chat.controller import SessionController
from chat.history import HistoryFetchError, HistoryLoader, HistoryNotFound
from chat.streaming import StreamingClient, build_streaming_client
from chat.typing_demo import DEFAULT_SCRIPT
from config.settings import get_settings


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("myai")

app = FastAPI(title="MY.AI Chat", version="1.0.0")
app.state.sessions = {}

# CORS: allow local frontend during development
settings = get_settings()
if settings.app_env.lower() in {"dev", "development", "local"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


class SubmitRequest(BaseModel):
    text: str = Field(..., description="User's latest message")


def get_history_loader() -> HistoryLoader:
    return HistoryLoader()


def get_streaming_client() -> StreamingClient:
    try:
        return build_streaming_client()
    except RuntimeError as exc:
        raise HTTPException(status_code=500, detail=str(exc))


def _sessions() -> Dict[str, SessionController]:
    return app.state.sessions


def _session_view(controller: SessionController) -> Dict[str, Any]:
    return {
        "session_id": controller.session_id,
        "state": controller.state.value,
        "messages": [
            {"role": message.role.value, "text": message.text}
            for message in controller.transcript
        ],
    }


@app.get("/chat/{session_id}")
async def enter_session(
    session_id: str,
    request: Request,
    loader: HistoryLoader = Depends(get_history_loader),
    client: StreamingClient = Depends(get_streaming_client),
) -> Dict[str, Any]:
    controller = _sessions().get(session_id)
    if controller is not None:
        return _session_view(controller)

    controller = SessionController(session_id, loader, client)
    try:
        await controller.load_history(cookies=request.cookies)
    except HistoryNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except HistoryFetchError as exc:
        logger.warning("History load failed for chat %s: %s", session_id, exc)
        raise HTTPException(status_code=502, detail="Could not load chat history")

    # Another request may have entered the session while we were loading.
    controller = _sessions().setdefault(session_id, controller)
    logger.info("Entered chat %s with %s messages", session_id, len(controller.transcript))
    return _session_view(controller)


async def _ndjson(first: Optional[str], replies: AsyncGenerator[str, None]) -> AsyncIterator[str]:
    try:
        if first is not None:
            yield json.dumps({"text": first}) + "\n"
        async for text in replies:
            yield json.dumps({"text": text}) + "\n"
    finally:
        await replies.aclose()


@app.post("/chat/{session_id}/messages")
async def submit_message(session_id: str, req: SubmitRequest) -> StreamingResponse:
    controller = _sessions().get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Chat {session_id!r} is not open")
    if not req.text.strip():
        raise HTTPException(status_code=422, detail="Message text is empty")

    exchange = controller.begin(req.text)
    if exchange is None:
        raise HTTPException(status_code=409, detail="A reply is still streaming")

    # Started before returning: a body that is never read still gets closed
    # by the event loop, which puts the session back to idle.
    try:
        first: Optional[str] = await exchange.__anext__()
    except StopAsyncIteration:
        first = None

    return StreamingResponse(
        _ndjson(first, exchange),
        media_type="application/x-ndjson",
    )


@app.delete("/chat/{session_id}")
async def leave_session(session_id: str) -> Dict[str, Any]:
    controller = _sessions().pop(session_id, None)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Chat {session_id!r} is not open")
    controller.close()
    logger.info("Left chat %s", session_id)
    return {"session_id": session_id, "closed": True}


@app.get("/api/demo")
def typing_demo() -> Dict[str, Any]:
    return {"steps": [step.to_dict() for step in DEFAULT_SCRIPT], "repeat": True}


@app.get("/health")
def health():
    return {"status": "ok"}

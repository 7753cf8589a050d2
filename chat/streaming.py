from __future__ import annotations

import logging
from typing import Any, AsyncIterator, List, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from chat.transcript import Message, Role
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)


def build_chat_model(settings: Optional[Settings] = None) -> BaseChatModel:
    settings = settings or get_settings()
    if not settings.google_api_key:
        raise RuntimeError(
            "GOOGLE_API_KEY not set. Please configure it in environment or .env"
        )

    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=settings.google_api_key,
        temperature=settings.temperature,
        top_p=settings.top_p,
    )


def to_lc_messages(history: Sequence[Message]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for item in history or []:
        if not item.text:
            continue
        if item.role is Role.USER:
            messages.append(HumanMessage(content=item.text))
        else:
            messages.append(AIMessage(content=item.text))
    return messages


def chunk_text(chunk: Any) -> str:
    """Pull the plain text out of a streamed message chunk."""
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type", "text") == "text":
            parts.append(part.get("text") or "")
    return "".join(parts)


class StreamingClient:
    """Adapter that turns a transcript plus a prompt into streamed text."""

    def __init__(self, llm: BaseChatModel) -> None:
        self.llm = llm

    async def open(self, prior_history: Sequence[Message], prompt: str) -> AsyncIterator[str]:
        messages = to_lc_messages(prior_history)
        messages.append(HumanMessage(content=prompt))
        logger.debug("Opening stream with %s prior messages", len(messages) - 1)

        async for chunk in self.llm.astream(messages):
            text = chunk_text(chunk)
            if text:
                yield text


def build_streaming_client(settings: Optional[Settings] = None) -> StreamingClient:
    return StreamingClient(build_chat_model(settings))

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field, ValidationError, model_validator

from chat.transcript import Message
from config.settings import get_settings


logger = logging.getLogger(__name__)


class HistoryFetchError(RuntimeError):
    """Prior transcript could not be fetched or parsed."""


class HistoryNotFound(HistoryFetchError):
    """The backend has no chat stored under the session id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Chat {session_id!r} not found")
        self.session_id = session_id


class HistoryResponse(BaseModel):
    history: List[Message] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_history(cls, values):
        # A missing or null history is an empty chat, not an error.
        if isinstance(values, dict) and values.get("history") is None:
            values = {**values, "history": []}
        return values


class HistoryLoader:
    """Fetches the persisted messages of one chat from the backend."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.history_timeout

    async def load(
        self, session_id: str, cookies: Optional[Mapping[str, str]] = None
    ) -> List[Message]:
        endpoint = f"{self.base_url}/api/chats/{quote(session_id, safe='')}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, cookies=dict(cookies or {})) as client:
                response = await client.get(endpoint)
            if response.status_code == 404:
                raise HistoryNotFound(session_id)
            response.raise_for_status()
            data: Dict[str, Any] = response.json()
        except httpx.HTTPError as exc:
            raise HistoryFetchError(f"History fetch failed for {session_id!r}: {exc}") from exc
        except ValueError as exc:
            raise HistoryFetchError(f"History response for {session_id!r} is not JSON: {exc}") from exc

        try:
            parsed = HistoryResponse.model_validate(data)
        except ValidationError as exc:
            raise HistoryFetchError(f"Invalid history payload for {session_id!r}: {exc}") from exc

        logger.info("Loaded %s messages for chat %s", len(parsed.history), session_id)
        return parsed.history

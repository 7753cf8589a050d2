from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "user"
    SYSTEM = "system"


class TranscriptError(RuntimeError):
    """Raised when the store's append ordering rules are broken."""


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="'user' or 'system'")
    text: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value):
        # Anything that is not the user is shown as the bot.
        if isinstance(value, Role):
            return value
        if str(value or "").strip().lower() == Role.USER.value:
            return Role.USER
        return Role.SYSTEM

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return "" if value is None else str(value)


class TranscriptStore:
    """Ordered conversation state.

    Only two kinds of mutation exist: appending a message and replacing the
    text of the last (system) message.
    """

    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._appended = False
        self._initialized = False

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self, history: Iterable[Message]) -> None:
        if self._appended:
            raise TranscriptError("transcript already grown; cannot re-initialize")
        self._messages = list(history)
        self._initialized = True

    def append_user(self, text: str) -> bool:
        cleaned = (text or "").strip()
        if not cleaned:
            return False
        self._messages.append(Message(role=Role.USER, text=cleaned))
        self._appended = True
        return True

    def append_system_placeholder(self) -> None:
        if not self._messages or self._messages[-1].role is not Role.USER:
            raise TranscriptError("placeholder must directly follow a user message")
        self._messages.append(Message(role=Role.SYSTEM, text=""))

    def update_last_system(self, text: str) -> bool:
        if not self._messages or self._messages[-1].role is not Role.SYSTEM:
            logger.warning("update_last_system called without a trailing system message")
            return False
        self._messages[-1] = self._messages[-1].model_copy(update={"text": text})
        return True

    def current_transcript(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

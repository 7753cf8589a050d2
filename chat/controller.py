from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncGenerator, AsyncIterator, Mapping, Optional, Tuple

from chat.history import HistoryLoader
from chat.streaming import StreamingClient
from chat.transcript import Message, TranscriptStore


logger = logging.getLogger(__name__)

APOLOGY_TEXT = "Oops! Something went wrong. Please try again."


class StreamState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"


class SessionController:
    """Drives one chat session: history load, then one exchange at a time.

    The controller owns its TranscriptStore. The history loader and the
    streaming client are injected so the controller can run against fakes.
    """

    def __init__(
        self,
        session_id: str,
        history_loader: HistoryLoader,
        streaming_client: StreamingClient,
        store: Optional[TranscriptStore] = None,
    ) -> None:
        self.session_id = session_id
        self.history_loader = history_loader
        self.streaming_client = streaming_client
        self.store = store if store is not None else TranscriptStore()
        self._state = StreamState.IDLE
        self._closed = False

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def transcript(self) -> Tuple[Message, ...]:
        return self.store.current_transcript()

    async def load_history(self, cookies: Optional[Mapping[str, str]] = None) -> Tuple[Message, ...]:
        history = await self.history_loader.load(self.session_id, cookies=cookies)
        self.store.initialize(history)
        return self.transcript

    def close(self) -> None:
        if self._state is StreamState.STREAMING:
            logger.info("Chat %s closed while a reply was streaming", self.session_id)
        self._closed = True

    async def submit(self, text: str) -> bool:
        """Run one exchange to completion. Returns False if the input was rejected."""
        exchange = self.begin(text)
        if exchange is None:
            return False
        async for _ in exchange:
            pass
        return True

    async def replies(self, text: str) -> AsyncIterator[str]:
        """Like submit(), yielding the reply text after every update."""
        exchange = self.begin(text)
        if exchange is None:
            return
        try:
            async for snapshot in exchange:
                yield snapshot
        finally:
            await exchange.aclose()

    def begin(self, text: str) -> Optional[AsyncGenerator[str, None]]:
        """Apply the submit transition now and return the reply stream.

        Returns None if the input was rejected. The session is Streaming from
        the moment this returns, so the caller must consume or close the stream.
        """
        # No await between the guard and the appends: two submissions can
        # never both get past it on the same event loop.
        if self._closed or self._state is not StreamState.IDLE:
            logger.debug("Chat %s: submission rejected, state=%s", self.session_id, self._state.value)
            return None
        prior = self.store.current_transcript()
        if not self.store.append_user(text):
            logger.debug("Chat %s: empty submission rejected", self.session_id)
            return None
        self.store.append_system_placeholder()
        self._state = StreamState.STREAMING
        prompt = self.store.current_transcript()[-2].text
        logger.info("Chat %s: submitting %s chars", self.session_id, len(prompt))
        return self._run(prior, prompt)

    async def _run(self, prior: Tuple[Message, ...], prompt: str) -> AsyncGenerator[str, None]:
        buffer = ""
        try:
            try:
                async for fragment in self.streaming_client.open(prior, prompt):
                    if self._closed:
                        logger.debug("Chat %s: dropping fragment after close", self.session_id)
                        return
                    buffer += fragment
                    self.store.update_last_system(buffer)
                    yield buffer
            except (asyncio.CancelledError, GeneratorExit):
                # An abandoned reply is as void as a failed one.
                if not self._closed:
                    logger.info("Chat %s: reply abandoned after %s chars", self.session_id, len(buffer))
                    self.store.update_last_system(APOLOGY_TEXT)
                raise
            except Exception:
                logger.exception("Chat %s: reply stream failed", self.session_id)
                if self._closed:
                    return
                self.store.update_last_system(APOLOGY_TEXT)
                yield APOLOGY_TEXT
                return
            logger.info("Chat %s: reply complete, %s chars", self.session_id, len(buffer))
        finally:
            self._state = StreamState.IDLE

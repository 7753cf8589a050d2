"""Unit tests for the Gemini streaming adapter."""

import pytest
from unittest.mock import MagicMock

from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage

from chat.streaming import (
    StreamingClient,
    build_chat_model,
    chunk_text,
    to_lc_messages,
)
from config.settings import Settings
from tests.fixtures.chat_fixtures import make_history


class TestMessageConversion:
    """Test transcript to LangChain conversion."""

    def test_roles_map_to_message_types(self):
        messages = to_lc_messages(make_history(("user", "hi"), ("system", "hello")))

        assert isinstance(messages[0], HumanMessage)
        assert isinstance(messages[1], AIMessage)
        assert [m.content for m in messages] == ["hi", "hello"]

    def test_empty_messages_are_skipped(self):
        messages = to_lc_messages(make_history(("user", "hi"), ("system", "")))

        assert len(messages) == 1


class TestChunkText:
    def test_string_content(self):
        assert chunk_text(AIMessageChunk(content="Hel")) == "Hel"

    def test_list_content(self):
        chunk = AIMessageChunk(content=[{"type": "text", "text": "lo"}, " there"])
        assert chunk_text(chunk) == "lo there"


class TestStreamingClient:
    """Test fragment streaming."""

    @pytest.mark.asyncio
    async def test_fragments_concatenate_to_reply(self):
        llm = GenericFakeChatModel(messages=iter([AIMessage(content="I'm fine, thanks.")]))
        client = StreamingClient(llm)

        fragments = [f async for f in client.open(make_history(("user", "hi")), "how are you")]

        assert len(fragments) > 1
        assert "".join(fragments) == "I'm fine, thanks."

    @pytest.mark.asyncio
    async def test_prompt_is_sent_after_history(self):
        seen = []

        async def astream(messages):
            seen.extend(messages)
            yield AIMessageChunk(content="")
            yield AIMessageChunk(content="ok")

        llm = MagicMock()
        llm.astream = astream
        client = StreamingClient(llm)

        fragments = [f async for f in client.open(make_history(("user", "hi"), ("system", "yo")), "next")]

        assert fragments == ["ok"]
        assert [type(m) for m in seen] == [HumanMessage, AIMessage, HumanMessage]
        assert seen[-1].content == "next"

    @pytest.mark.asyncio
    async def test_backend_errors_propagate(self):
        async def astream(messages):
            yield AIMessageChunk(content="Par")
            raise ConnectionError("stream dropped")

        llm = MagicMock()
        llm.astream = astream
        client = StreamingClient(llm)

        received = []
        with pytest.raises(ConnectionError):
            async for fragment in client.open([], "hi"):
                received.append(fragment)

        assert received == ["Par"]


class TestBuildChatModel:
    def test_missing_api_key(self):
        settings = Settings()
        settings.google_api_key = None

        with pytest.raises(RuntimeError, match="GOOGLE_API_KEY"):
            build_chat_model(settings)

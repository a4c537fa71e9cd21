"""Tests for the LangChain-backed model gateway."""

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from taskflow.models.gateway import ChatRequest, LangChainGateway, ModelGateway, to_langchain_messages


class BrokenChatModel(FakeListChatModel):
    def _call(self, *args, **kwargs):
        raise RuntimeError("invalid_api_key")


class TestLangChainGateway:
    def test_satisfies_protocol(self):
        gateway = LangChainGateway("fake", FakeListChatModel(responses=["hi"]))
        assert isinstance(gateway, ModelGateway)

    @pytest.mark.asyncio
    async def test_chat(self):
        gateway = LangChainGateway("fake", FakeListChatModel(responses=["hello back"]), model_name="fake-1")
        response = await gateway.chat(ChatRequest.from_prompt("hello", system="be brief", max_tokens=50))
        assert response.content == "hello back"
        assert response.backend == "fake"
        assert response.model == "fake-1"
        assert response.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_chat_stream(self):
        gateway = LangChainGateway("fake", FakeListChatModel(responses=["streamed"]))
        chunks = []

        async def collect(text):
            chunks.append(text)

        await gateway.chat_stream(ChatRequest.from_prompt("go"), collect)
        assert "".join(chunks) == "streamed"

    @pytest.mark.asyncio
    async def test_validate_credentials(self):
        assert await LangChainGateway("ok", FakeListChatModel(responses=["pong"])).validate_credentials()
        assert not await LangChainGateway("bad", BrokenChatModel(responses=["x"])).validate_credentials()

    @pytest.mark.asyncio
    async def test_chat_propagates_errors(self):
        gateway = LangChainGateway("bad", BrokenChatModel(responses=["x"]))
        with pytest.raises(RuntimeError, match="invalid_api_key"):
            await gateway.chat(ChatRequest.from_prompt("hello"))


class TestMessageConversion:
    def test_roles(self):
        request = ChatRequest(
            messages=[
                {"role": "system", "content": "s"},
                {"role": "user", "content": "u"},
                {"role": "assistant", "content": "a"},
            ]
        )
        converted = to_langchain_messages(request)
        assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage]
        assert request.combined_text() == "s\nu\na"

    def test_request_requires_a_message(self):
        with pytest.raises(ValueError):
            ChatRequest(messages=[])

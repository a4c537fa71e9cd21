"""Model Gateway contract and its LangChain adapter.

A gateway is one reachable backend. It owns the wire format: the orchestrator
only sees ``ChatRequest`` in and ``ChatResponse`` out.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Protocol, Union, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, ConfigDict, Field

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Chat-style request routed through the orchestrator."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    messages: List[ChatMessage] = Field(min_length=1)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)

    @classmethod
    def from_prompt(cls, prompt: str, *, system: Optional[str] = None, **kwargs: Any) -> "ChatRequest":
        messages = []
        if system:
            messages.append(ChatMessage(role="system", content=system))
        messages.append(ChatMessage(role="user", content=prompt))
        return cls(messages=messages, **kwargs)

    def combined_text(self) -> str:
        return "\n".join(message.content for message in self.messages)


class ChatResponse(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    content: str
    backend: str
    model: str = ""
    latency_ms: float = Field(default=0.0, ge=0)
    usage: Dict[str, int] = Field(default_factory=dict)


@runtime_checkable
class ModelGateway(Protocol):
    """Uniform capability exposed by every backend."""

    backend_id: str

    async def chat(self, request: ChatRequest) -> ChatResponse:
        ...

    async def chat_stream(self, request: ChatRequest, on_chunk: ChunkCallback) -> None:
        ...

    async def validate_credentials(self) -> bool:
        ...


async def emit_chunk(on_chunk: ChunkCallback, text: str) -> None:
    maybe = on_chunk(text)
    if maybe is not None:
        await maybe


def to_langchain_messages(request: ChatRequest) -> List[BaseMessage]:
    converted: List[BaseMessage] = []
    for message in request.messages:
        if message.role == "system":
            converted.append(SystemMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted


def _text_of(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content)


class LangChainGateway:
    """Adapts any LangChain chat model (ChatOpenAI in production) to ModelGateway."""

    def __init__(self, backend_id: str, model: BaseChatModel, *, model_name: str = "") -> None:
        self.backend_id = backend_id
        self._model = model
        self._model_name = model_name or getattr(model, "model_name", "") or type(model).__name__

    def _runnable(self, request: ChatRequest):
        kwargs: Dict[str, Any] = {}
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        return self._model.bind(**kwargs) if kwargs else self._model

    async def chat(self, request: ChatRequest) -> ChatResponse:
        started = time.perf_counter()
        message = await self._runnable(request).ainvoke(to_langchain_messages(request))
        usage: Dict[str, int] = {}
        usage_metadata = getattr(message, "usage_metadata", None)
        if usage_metadata:
            usage = {
                "input_tokens": int(usage_metadata.get("input_tokens", 0)),
                "output_tokens": int(usage_metadata.get("output_tokens", 0)),
                "total_tokens": int(usage_metadata.get("total_tokens", 0)),
            }
        return ChatResponse(
            content=_text_of(message.content),
            backend=self.backend_id,
            model=self._model_name,
            latency_ms=(time.perf_counter() - started) * 1000,
            usage=usage,
        )

    async def chat_stream(self, request: ChatRequest, on_chunk: ChunkCallback) -> None:
        async for chunk in self._runnable(request).astream(to_langchain_messages(request)):
            text = _text_of(chunk.content)
            if text:
                await emit_chunk(on_chunk, text)

    async def validate_credentials(self) -> bool:
        ping = ChatRequest.from_prompt("ping", max_tokens=1)
        try:
            await self._runnable(ping).ainvoke(to_langchain_messages(ping))
        except Exception:
            return False
        return True


__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChunkCallback",
    "LangChainGateway",
    "ModelGateway",
    "emit_chunk",
    "to_langchain_messages",
]

"""Shared fixtures: a scripted stand-in for the external model."""

import asyncio
from typing import Callable, List, Optional, Tuple, Union

import pytest

from core.exceptions import ModelCallError
from core.models import Message, ModelResponse


Reply = Union[str, Exception]


class FakeModelClient:
    """
    Records every call and answers from a script.

    ``invoke`` replies are consumed in order; once the list runs out the last
    one repeats. ``chat`` answers through ``chat_handler`` when given, otherwise
    with ``chat_reply``. An ``Exception`` in either place is raised instead.
    """

    def __init__(
        self,
        invoke_replies: Optional[List[Reply]] = None,
        chat_reply: Reply = "Noted.",
        chat_handler: Optional[Callable[[List[Message], Optional[str]], Reply]] = None,
        delay: float = 0.0
    ):
        self.invoke_replies = list(invoke_replies or [""])
        self.chat_reply = chat_reply
        self.chat_handler = chat_handler
        self.delay = delay
        self.chat_calls: List[Tuple[List[Message], Optional[str]]] = []
        self.invoke_calls: List[Tuple[str, Optional[str]]] = []

    async def chat(self, messages, system_prompt=None) -> ModelResponse:
        self.chat_calls.append((list(messages), system_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)

        reply = self.chat_handler(messages, system_prompt) if self.chat_handler else self.chat_reply
        if isinstance(reply, Exception):
            raise reply
        return ModelResponse(
            text=reply,
            input_tokens=10 * len(messages),
            output_tokens=5,
            latency_ms=1.0
        )

    async def invoke(self, prompt, system_prompt=None) -> ModelResponse:
        self.invoke_calls.append((prompt, system_prompt))
        index = min(len(self.invoke_calls) - 1, len(self.invoke_replies) - 1)
        reply = self.invoke_replies[index]
        if isinstance(reply, Exception):
            raise reply
        return ModelResponse(text=reply, input_tokens=100, output_tokens=50, latency_ms=1.0)


@pytest.fixture
def fake_client():
    """A client that accepts everything and extracts nothing."""
    return FakeModelClient()


@pytest.fixture
def failing_client():
    """A client whose every call fails."""
    error = ModelCallError("throttled", model_id="fake-model")
    return FakeModelClient(invoke_replies=[error], chat_reply=error)


@pytest.fixture
def make_client():
    """Factory for scripted clients."""
    return FakeModelClient

"""
Shared fixtures: scripted LLM and an in-memory store.
"""

import asyncio
import dataclasses
from typing import Callable, List, Optional, Union

import pytest

from src.agents.analysis import ReviewAnalysisAgent, default_profiles
from src.utils.llm import ChatModel
from src.utils.storage import JsonReviewStore


class FakeChatModel(ChatModel):
    """
    Scripted chat model.

    reply is a string, an exception instance, or a callable(prompt) returning
    either. A list of replies is consumed in order (the last one repeats).
    """

    model_name = "fake-model"

    def __init__(self, reply: Union[str, Exception, Callable, List] = "{}", delay: float = 0.0):
        self.replies = list(reply) if isinstance(reply, list) else [reply]
        self.delay = delay
        self.calls: List[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, system_instruction, prompt, temperature, max_tokens):
        self.calls.append({
            "system_instruction": system_instruction,
            "prompt": prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        reply = self.replies[min(len(self.calls) - 1, len(self.replies) - 1)]

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if callable(reply):
                reply = reply(prompt)
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1


def fast_profiles(**overrides) -> dict:
    """Default mode profiles without pacing delays."""
    return {
        mode: dataclasses.replace(profile, window_delay=0.0, **overrides)
        for mode, profile in default_profiles().items()
    }


def make_agent(chat_model: ChatModel, timeout_seconds: float = 5.0, max_retries: int = 2,
               concurrency: Optional[int] = None) -> ReviewAnalysisAgent:
    overrides = {"concurrency": concurrency} if concurrency else {}
    return ReviewAnalysisAgent(
        chat_model=chat_model,
        timeout_seconds=timeout_seconds,
        max_retries=max_retries,
        profiles=fast_profiles(**overrides),
    )


@pytest.fixture
def store():
    """Memory-only store."""
    return JsonReviewStore()

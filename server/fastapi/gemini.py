"""
Gemini client with Google Maps grounding.

Wraps ChatGoogleGenerativeAI so every call carries the Maps tool, an optional
location bias, a timeout and an optional cancellation event.
"""

import asyncio
import logging
from typing import Any, Protocol

from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import BaseModel

from config import Settings
from models import Location

logger = logging.getLogger(__name__)

MAPS_TOOL = {"google_maps": {}}


class MissingConfigurationError(RuntimeError):
    pass


class GenerationTimeoutError(RuntimeError):
    pass


class GenerationCancelledError(RuntimeError):
    pass


class GenerationResult(BaseModel):
    text: str
    grounding_metadata: Any = None


class Generator(Protocol):
    async def generate(
        self,
        prompt: str,
        location: Location | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> GenerationResult: ...


def location_bias(location: Location | None) -> dict | None:
    """Tool config that biases Maps grounding towards the user's position."""
    if location is None:
        return None
    return {
        "retrieval_config": {
            "lat_lng": {"latitude": location.lat, "longitude": location.lon},
        }
    }


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


async def run_with_deadline(coro, timeout: float | None, cancel: asyncio.Event | None = None):
    """Await `coro`, giving up after `timeout` seconds or once `cancel` is set."""
    task = asyncio.ensure_future(coro)
    waiters = {task}
    cancel_waiter = None
    if cancel is not None:
        cancel_waiter = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            if not waiter.done():
                waiter.cancel()

    if task in done:
        return task.result()
    if cancel_waiter is not None and cancel_waiter in done:
        raise GenerationCancelledError("Generation was cancelled")
    raise GenerationTimeoutError(f"Generation timed out after {timeout} seconds")


class GeminiMapsClient:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._llm: ChatGoogleGenerativeAI | None = None

    def _get_llm(self) -> ChatGoogleGenerativeAI:
        if not self.settings.google_api_key:
            raise MissingConfigurationError("GOOGLE_API_KEY environment variable is not set.")
        if self._llm is None:
            self._llm = ChatGoogleGenerativeAI(
                model=self.settings.gemini_model,
                temperature=self.settings.gemini_temperature,
                google_api_key=self.settings.google_api_key,
            )
        return self._llm

    async def generate(
        self,
        prompt: str,
        location: Location | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> GenerationResult:
        llm = self._get_llm()

        kwargs: dict[str, Any] = {"tools": [MAPS_TOOL]}
        tool_config = location_bias(location)
        if tool_config:
            kwargs["tool_config"] = tool_config

        logger.info(
            "Calling Gemini",
            extra={"model": self.settings.gemini_model, "location_bias": tool_config is not None},
        )
        message = await run_with_deadline(
            llm.ainvoke([HumanMessage(content=prompt)], **kwargs),
            timeout=self.settings.llm_timeout_seconds,
            cancel=cancel,
        )

        return GenerationResult(
            text=_message_text(message.content),
            grounding_metadata=message.response_metadata.get("grounding_metadata"),
        )

"""Client for the OpenAI-compatible chat-completions endpoint."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import logfire
from openai import APIError, APITimeoutError, AsyncOpenAI
from pydantic import BaseModel
from pydantic_ai.settings import ModelSettings

from .config import ModelConfig
from .contracts import strict_json_schema
from .exceptions import (
    EmptyResponseError,
    IncompleteResponseError,
    ModelTimeoutError,
    RefusalError,
    TransportError,
)

T = TypeVar("T")


async def with_deadline(awaitable: Awaitable[T], seconds: float | None, label: str) -> T:
    """Await `awaitable`, failing with `ModelTimeoutError` after `seconds`.

    `None` means no deadline: the transport's own timeout, if any, applies.
    """
    if seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise ModelTimeoutError(label, seconds) from e


class ModelClient:
    """Issues one schema-constrained generation request per call.

    The client never retries; retry policy belongs to the caller.
    """

    def __init__(self, config: ModelConfig, client: AsyncOpenAI | None = None):
        """Initialize the client.

        Args:
            config: Endpoint, model and API key.
            client: Optional pre-built SDK client (used by tests).
        """
        self.config = config
        self._client = client or AsyncOpenAI(
            base_url=config.endpoint,
            api_key=config.api_key,
            max_retries=0,
        )

    async def generate(
        self,
        prompt: str,
        *,
        schema: type[BaseModel] | None = None,
        schema_name: str = "response",
        settings: ModelSettings | None = None,
        label: str = "generation",
    ) -> str:
        """Run one completion and return the raw message content.

        Args:
            prompt: The fully rendered instruction, sent as a single user message.
            schema: Output shape for strict `json_schema` decoding. When omitted
                the request uses plain `json_object` mode.
            schema_name: Name reported to the endpoint for the schema.
            settings: Temperature and optional `timeout` (seconds).
            label: Human-readable name of the call, used in logs and errors.

        Raises:
            ModelTimeoutError: The deadline in `settings` expired.
            TransportError: The endpoint could not be reached or errored.
            RefusalError: The model declined to answer.
            IncompleteResponseError: The model hit its length limit.
            EmptyResponseError: The model produced no content.
        """
        settings = settings or {}
        if schema is not None:
            response_format = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "schema": strict_json_schema(schema),
                    "strict": True,
                },
            }
        else:
            response_format = {"type": "json_object"}

        request = self._client.chat.completions.create(
            model=self.config.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=settings.get("temperature", 0.0),
            response_format=response_format,
        )

        with logfire.span("model request {label}", label=label, model=self.config.model):
            try:
                completion = await with_deadline(request, settings.get("timeout"), label)
            except APITimeoutError as e:
                raise ModelTimeoutError(label) from e
            except APIError as e:
                raise TransportError(f"{label} failed: {e}") from e

        choice = completion.choices[0]
        message = choice.message

        refusal = getattr(message, "refusal", None)
        if refusal:
            logfire.warn("Model refused request", label=label, refusal=refusal)
            raise RefusalError(refusal)

        if choice.finish_reason == "length":
            raise IncompleteResponseError(f"{label} was truncated at the length limit")

        if not message.content:
            raise EmptyResponseError(f"{label} returned an empty response")

        return message.content

"""HTTP transport for OpenAI-compatible chat-completions endpoints.

ChatTransport owns one httpx.AsyncClient (created in start(), closed in
close()) and opens streamed completions as an async context manager:

    async with transport.open_stream(messages=..., tools=...) as stream:
        async for chunk in stream:
            ...

Errors are raised as TransportError; retry policy belongs to the caller.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from genui.config import Settings

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = frozenset({"invalid_api_key", "unauthorized", "permission_denied"})
_AUTH_MESSAGE_HINTS = ("invalid api key", "incorrect api key", "unauthorized", "401", "forbidden")


def is_auth_error(error: BaseException) -> bool:
    """Whether `error` means the credentials were rejected."""
    status = getattr(error, "status_code", None)
    if status in (401, 403):
        return True
    if getattr(error, "code", None) in AUTH_ERROR_CODES:
        return True
    message = str(error).lower()
    return any(hint in message for hint in _AUTH_MESSAGE_HINTS)


class TransportError(RuntimeError):
    """A failed or rejected request to the completions endpoint."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_type: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type
        self.code = code

    @property
    def is_auth_error(self) -> bool:
        return is_auth_error(self)


def _error_object(data: Any) -> dict[str, Any]:
    # Some providers wrap the error body in a one-element list
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return error
        if isinstance(error, str):
            return {"message": error}
    return {}


def _error_from_body(status_code: int, body: bytes | str) -> TransportError:
    text = body.decode(errors="replace") if isinstance(body, bytes) else body
    try:
        error = _error_object(json.loads(text))
    except json.JSONDecodeError:
        error = {}
    error_type = error.get("type") or error.get("status") or "http_error"
    message = error.get("message") or text[:500] or "unknown error"
    code = error.get("code")
    return TransportError(
        f"API error ({status_code}): {error_type} - {message}",
        status_code=status_code,
        error_type=str(error_type),
        code=str(code) if code is not None else None,
    )


def completion_to_chunk(completion: dict[str, Any]) -> dict[str, Any]:
    """Convert a non-streamed chat completion into one equivalent chunk."""
    choices = completion.get("choices") or []
    message = (choices[0].get("message") if choices and isinstance(choices[0], dict) else None) or {}
    tool_calls = [
        {
            "index": i,
            "id": call.get("id"),
            "function": call.get("function") or {},
        }
        for i, call in enumerate(message.get("tool_calls") or [])
        if isinstance(call, dict)
    ]
    delta: dict[str, Any] = {"content": message.get("content")}
    if tool_calls:
        delta["tool_calls"] = tool_calls
    chunk: dict[str, Any] = {"choices": [{"index": 0, "delta": delta}]}
    if completion.get("usage"):
        chunk["usage"] = completion["usage"]
    return chunk


class CompletionStream:
    """Async iterator of chunk dicts read from one completions response.

    SSE bodies are read line by line up to `data: [DONE]`; a plain JSON
    body becomes a single chunk and is kept for final_completion().
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._final: dict[str, Any] | None = None

    @property
    def is_event_stream(self) -> bool:
        content_type = self._response.headers.get("content-type", "")
        return not content_type.startswith("application/json")

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        if self.is_event_stream:
            return self._iter_events()
        return self._iter_json()

    async def _iter_events(self) -> AsyncIterator[dict[str, Any]]:
        async for line in self._response.aiter_lines():
            line = line.strip()
            if not line.startswith("data:"):
                continue
            payload = line[5:].strip()
            if payload == "[DONE]":
                return
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed SSE line: %.200s", payload)
                continue
            if isinstance(data, dict) and data.get("error"):
                # HTTP 200 but the provider failed mid-stream
                raise _error_from_body(self._response.status_code, payload)
            yield data

    async def _iter_json(self) -> AsyncIterator[dict[str, Any]]:
        body = await self._response.aread()
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON completion body: {e}") from e
        if not isinstance(data, dict):
            raise TransportError("Invalid completion body: expected an object")
        if data.get("error"):
            raise _error_from_body(self._response.status_code, body)
        self._final = data
        yield completion_to_chunk(data)

    def final_completion(self) -> dict[str, Any] | None:
        """The consolidated completion, when the response was not streamed."""
        return self._final


class ChatTransport:
    """Client for a chat-completions endpoint."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._http: httpx.AsyncClient | None = None

    async def start(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings

        headers: dict[str, str] = {"content-type": "application/json"}
        if settings.api_key:
            headers["authorization"] = f"Bearer {settings.api_key}"
        else:
            logger.warning(
                "No API key configured for provider %s -- API calls will fail",
                settings.provider,
            )

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        )

        self._http = httpx.AsyncClient(
            base_url=settings.resolved_base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=transport,
        )
        logger.info(
            "httpx client initialized (provider: %s, model: %s)",
            settings.provider,
            settings.resolved_model,
        )

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    def build_payload(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self._settings.resolved_model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
            payload["parallel_tool_calls"] = True
        return payload

    @asynccontextmanager
    async def open_stream(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> AsyncIterator[CompletionStream]:
        """Open a streamed completion; raises TransportError on failure."""
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        payload = self.build_payload(messages, tools, model)
        try:
            async with self._http.stream("POST", "chat/completions", json=payload) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    error = _error_from_body(response.status_code, body)
                    logger.warning("Completions request rejected: %s", error)
                    raise error
                yield CompletionStream(response)
        except httpx.TimeoutException as e:
            raise TransportError(f"API request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error: {e}") from e

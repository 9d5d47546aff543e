"""Utilities for calling locally hosted LLMs (e.g., Ollama)."""

from __future__ import annotations

import asyncio
from typing import Any

from .config import Config
from .transport import HttpStatusError, HttpTransportError, perform_json_request

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
_CHAT_ENDPOINT = "/api/chat"


class LocalLLMError(RuntimeError):
    """Raised when a local LLM invocation fails."""


def _perform_ollama_request(
    payload: dict[str, Any],
    base_url: str,
    timeout: float,
) -> str:
    """Execute the blocking chat request and extract the assistant text."""

    url = f"{base_url.rstrip('/')}{_CHAT_ENDPOINT}"
    try:
        parsed = perform_json_request("POST", url, payload=payload, timeout=timeout)
    except HttpStatusError as exc:
        raise LocalLLMError(
            f"Ollama chat request failed with status {exc.status}: {exc.body or exc.reason}"
        ) from exc
    except HttpTransportError as exc:
        raise LocalLLMError(str(exc)) from exc

    if not isinstance(parsed, dict):
        raise LocalLLMError("Ollama returned non-JSON response.")

    message = parsed.get("message") or {}
    content = message.get("content")
    if not content:
        raise LocalLLMError("Ollama response did not include assistant content.")

    return content


async def call_ollama_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    base_url: str | None = None,
    timeout: float = 120.0,
    json_output: bool = True,
) -> str:
    """Invoke a local Ollama model and return the assistant text.

    ``json_output`` asks Ollama to constrain the reply to JSON, which is what
    every structured content call in labsim expects.
    """

    resolved_base = (base_url or Config.OLLAMA_BASE_URL or DEFAULT_OLLAMA_BASE_URL).rstrip("/")

    system_prompt = system_prompt.strip()
    user_prompt = user_prompt.strip()
    if not user_prompt:
        raise LocalLLMError("Cannot call Ollama with an empty user prompt.")

    messages: list[dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})

    payload: dict[str, Any] = {
        "model": llm_model,
        "messages": messages,
        "stream": False,
    }
    if json_output:
        payload["format"] = "json"

    return await asyncio.to_thread(
        _perform_ollama_request,
        payload,
        resolved_base,
        timeout,
    )


__all__ = ["LocalLLMError", "call_ollama_chat", "DEFAULT_OLLAMA_BASE_URL"]

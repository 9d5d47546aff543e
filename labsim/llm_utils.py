"""Structured LLM calls with validation-aware retries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from mirascope import llm
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .local_llm import LocalLLMError, call_ollama_chat
from .logging_utils import log_ai, log_error


ModelT = TypeVar("ModelT", bound=BaseModel)
LLM_TIMEOUT_SECONDS = 60.0


@dataclass(slots=True)
class ValidationFeedback:
    """Feedback appended to the prompt after a response failed schema validation."""

    llm_text: str
    issues: Sequence[str]


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def inject_validation_feedback(error: ValidationError) -> ValidationFeedback:
    """Turn a pydantic ValidationError into corrective instructions for the model.

    Each issue is rendered as ``field.path: message [type=...] | received=...``
    so the model can see exactly which part of its JSON was wrong.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        if err.get("type"):
            details += f" [type={err['type']}]"
        if "input" in err:
            preview = _truncate_preview(err.get("input"))
            if preview:
                details += f" | received={preview}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    instructions = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Do not include explanations or code fences. Return only valid JSON.",
        "Issues detected:",
    ]
    instructions.extend(f"- {issue}" for issue in issues)

    return ValidationFeedback(llm_text="\n".join(instructions), issues=issues)


async def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = 3,
    timeout: float = LLM_TIMEOUT_SECONDS,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Invoke a structured LLM call, retrying only on schema validation failures.

    Validation feedback is appended to the original user prompt, so the model
    keeps its full context while seeing what to correct. Timeouts and provider
    errors propagate immediately; after ``max_attempts`` the last validation
    error is re-raised.
    """

    system_prompt = system_prompt.strip()
    base_user_prompt = user_prompt.strip()
    feedback_payload: ValidationFeedback | None = None

    def _user_section() -> str:
        sections = [base_user_prompt]
        if feedback_payload is not None:
            sections.append(feedback_payload.llm_text)
        return "\n\n".join(section for section in sections if section)

    def _combined_prompt(user_section: str) -> str:
        return "\n\n".join(part for part in (system_prompt, user_section) if part)

    use_local_llm = llm_provider.lower() == "ollama"

    remote_invoke: Callable[[str], Any] | None = None
    if not use_local_llm:
        @llm.call(provider=llm_provider, model=llm_model, response_model=response_model)
        async def _invoke(prompt: str) -> str:
            return prompt

        remote_invoke = _invoke

    attempt_number = 0
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            if attempt_number > 1:
                log_ai(
                    f"Retry {attempt_number}/{max_attempts} for {response_model.__name__} "
                    "with schema feedback"
                )
            user_section = _user_section()
            try:
                if use_local_llm:
                    raw_response = await asyncio.wait_for(
                        call_ollama_chat(
                            system_prompt=system_prompt,
                            user_prompt=user_section,
                            llm_model=llm_model,
                        ),
                        timeout=timeout,
                    )
                    return response_model.model_validate_json(raw_response)

                if remote_invoke is None:
                    raise RuntimeError("Remote LLM invoke is not initialized.")

                return await asyncio.wait_for(
                    remote_invoke(_combined_prompt(user_section)),
                    timeout=timeout,
                )
            except ValidationError as exc:
                feedback_payload = feedback_builder(exc)
                log_error(
                    f"LLM schema validation failed for {response_model.__name__} "
                    f"(attempt {attempt_number}/{max_attempts})"
                )
                for issue in feedback_payload.issues:
                    log_error(f"    - {issue}")
                raise
            except asyncio.TimeoutError:
                log_error(
                    f"LLM call timed out after {int(timeout)}s for {response_model.__name__}"
                )
                raise
            except LocalLLMError as exc:
                raise RuntimeError(
                    f"Local LLM provider error ({llm_provider}): {exc}"
                ) from exc

    raise RuntimeError("LLM retry mechanism exited unexpectedly")


__all__ = ["ValidationFeedback", "inject_validation_feedback", "call_llm_with_retries"]

"""LLM client abstraction, JSON extraction and validated invocation."""

import asyncio
import json
import random
import re
from dataclasses import dataclass, replace
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from mycel.core.config import Settings, get_settings
from mycel.core.errors import AgentError, LlmError
from mycel.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_VALIDATION_RETRIES = 1
RESULT_TOOL_NAME = "submit_result"


@dataclass(frozen=True)
class LlmRequest:
    system_prompt: str
    user_message: str
    json_schema: dict[str, Any] | None = None


@dataclass(frozen=True)
class LlmResponse:
    content: str
    input_tokens: int | None = None
    output_tokens: int | None = None


class LlmClient(Protocol):
    async def invoke(self, request: LlmRequest) -> LlmResponse: ...


# =============================================================================
# Anthropic client with transient retry
# =============================================================================


def _is_transient(error: Exception) -> bool:
    from anthropic import (
        APIConnectionError,
        APIStatusError,
        InternalServerError,
        RateLimitError,
    )

    # APITimeoutError subclasses APIConnectionError
    if isinstance(error, (APIConnectionError, InternalServerError, RateLimitError)):
        return True
    if isinstance(error, APIStatusError):
        return error.status_code == 429 or error.status_code >= 500
    return False


def _backoff_delay(attempt: int, base_delay: float) -> float:
    return base_delay * (2**attempt) + random.uniform(0, base_delay)


class AnthropicLlmClient:
    """LlmClient backed by Anthropic messages.

    When the request carries a JSON schema the model is forced to answer through a
    single tool call, so the returned content is always the tool input as JSON.
    """

    def __init__(self, settings: Settings | None = None, client: Any = None):
        self.settings = settings or get_settings()
        if client is None:
            from anthropic import AsyncAnthropic

            client = AsyncAnthropic(api_key=self.settings.ANTHROPIC_API_KEY)
        self._client = client

    async def invoke(self, request: LlmRequest) -> LlmResponse:
        kwargs: dict[str, Any] = {
            "model": self.settings.LLM_MODEL,
            "max_tokens": self.settings.LLM_MAX_TOKENS,
            "temperature": self.settings.LLM_TEMPERATURE,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_message}],
        }
        if request.json_schema:
            kwargs["tools"] = [
                {
                    "name": RESULT_TOOL_NAME,
                    "description": "Submit the structured result.",
                    "input_schema": request.json_schema,
                }
            ]
            kwargs["tool_choice"] = {"type": "tool", "name": RESULT_TOOL_NAME}

        max_retries = self.settings.LLM_MAX_RETRIES
        for attempt in range(max_retries + 1):
            try:
                response = await self._client.messages.create(**kwargs)
                return self._to_llm_response(response)
            except Exception as e:
                if not _is_transient(e):
                    raise LlmError(f"LLM request failed: {e}", retryable=False, cause=e) from e
                if attempt >= max_retries:
                    raise LlmError(
                        f"LLM request failed after {max_retries + 1} attempts: {e}",
                        retryable=True,
                        cause=e,
                    ) from e
                delay = _backoff_delay(attempt, self.settings.LLM_RETRY_BASE_DELAY)
                logger.warning(
                    f"LLM attempt {attempt + 1}/{max_retries + 1} failed "
                    f"({type(e).__name__}), retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise LlmError("LLM request failed", retryable=True)  # unreachable

    @staticmethod
    def _to_llm_response(response: Any) -> LlmResponse:
        content = ""
        for block in response.content:
            if block.type == "tool_use":
                content = json.dumps(block.input)
                break
            if block.type == "text":
                content += block.text

        usage = getattr(response, "usage", None)
        return LlmResponse(
            content=content,
            input_tokens=getattr(usage, "input_tokens", None),
            output_tokens=getattr(usage, "output_tokens", None),
        )


# =============================================================================
# JSON extraction
# =============================================================================

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def _extract_balanced(text: str, open_char: str, close_char: str) -> Any:
    start = text.find(open_char)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(text[start : i + 1])
                except json.JSONDecodeError:
                    return None
    return None


def extract_json(raw_output: str) -> Any:
    """
    Extract a JSON value from LLM output.

    Tries, in order: the whole string, the first fenced code block, the first
    balanced {...} object, the first balanced [...] array.

    Raises:
        json.JSONDecodeError: If no JSON value can be found
    """
    cleaned = raw_output.strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    fence_match = _FENCE_RE.search(cleaned)
    if fence_match:
        try:
            return json.loads(fence_match.group(1).strip())
        except json.JSONDecodeError:
            pass

    for open_char, close_char in (("{", "}"), ("[", "]")):
        value = _extract_balanced(cleaned, open_char, close_char)
        if value is not None:
            return value

    raise json.JSONDecodeError("No JSON value found in LLM output", cleaned[:100], 0)


def _format_validation_errors(error: ValidationError) -> list[str]:
    errors = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "(root)"
        errors.append(f"{location}: {item['msg']}")
    return errors


async def invoke_and_validate(
    llm_client: LlmClient,
    request: LlmRequest,
    model: type[T],
    agent_name: str,
    max_retries: int = DEFAULT_VALIDATION_RETRIES,
) -> T:
    """
    Call the LLM and validate its JSON answer against a Pydantic model.

    A failed parse or validation is retried with a [CORRECTION] block listing the
    errors. Backend errors from the client propagate unchanged.

    Raises:
        AgentError: If no attempt produced valid output
        LlmError: If the client fails
    """
    if request.json_schema is None:
        request = replace(request, json_schema=model.model_json_schema())

    last_errors: list[str] = []
    for attempt in range(max_retries + 1):
        current = request
        if attempt > 0:
            corrections = "\n".join(f"- {e}" for e in last_errors)
            current = replace(
                request,
                user_message=(
                    f"{request.user_message}\n\n[CORRECTION] Your previous response had "
                    "validation errors. Please fix these issues and respond with valid "
                    f"JSON:\n{corrections}"
                ),
            )

        response = await llm_client.invoke(current)

        try:
            parsed = extract_json(response.content)
        except json.JSONDecodeError as e:
            last_errors = [f"Failed to parse JSON: {e.msg}"]
            logger.warning(
                f"{agent_name} attempt {attempt + 1} returned unparseable JSON",
                extra={"errors": last_errors},
            )
            continue

        try:
            return model.model_validate(parsed)
        except ValidationError as e:
            last_errors = _format_validation_errors(e)
            logger.warning(
                f"{agent_name} attempt {attempt + 1} failed schema validation",
                extra={"errors": last_errors},
            )

    raise AgentError(
        f"{agent_name} returned invalid output after {max_retries + 1} attempts: "
        f"{', '.join(last_errors)}"
    )

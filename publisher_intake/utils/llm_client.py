"""Completion client — OpenAI-compatible chat completions with retries.

Purpose:
  Foundation layer for the extractors. Wraps the chat-completions endpoint
  with retry logic, strict JSON parsing and token usage logging.

Design rules:
  - Fails loud: after the retry budget is spent, CompletionError is raised.
    There is no silent empty-result fallback at this layer.
  - Transport errors, retryable statuses (429, 500, 502, 503, 504) and
    malformed (non-JSON) completions are all retried.
  - Exponential backoff: base_delay * 2**attempt between attempts.

Called by: services/offer_extractor.py, services/legacy_extractor.py
Depends on: publisher_intake.http_client, publisher_intake.config
"""

import asyncio
import json
import time
from typing import Any

import httpx
from loguru import logger

from publisher_intake.config import settings
from publisher_intake.exceptions import CompletionError
from publisher_intake.http_client import http

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


class _MalformedCompletion(Exception):
    pass


def _headers() -> dict:
    return {
        "Authorization": f"Bearer {settings.openai_api_key}",
        "Content-Type": "application/json",
    }


def _extract_text(data: dict) -> str | None:
    """Extract text content from a chat completion response."""
    choices = data.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("message") or {}).get("content")


def parse_json_text(text: str) -> dict | list | None:
    """Parse JSON from model output that may carry markdown fences or preamble."""
    if not text:
        return None

    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines if not line.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for start_char, end_char in [("{", "}"), ("[", "]")]:
        start = cleaned.find(start_char)
        end = cleaned.rfind(end_char)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError:
                continue

    logger.debug("JSON parse failed: {}...", text[:100])
    return None


async def completion_json(
    prompt: str,
    *,
    system: str = "",
    model: str | None = None,
    max_tokens: int = 4096,
    temperature: float = 0.1,
    timeout: int | None = None,
    max_retries: int | None = None,
    base_delay: float | None = None,
) -> dict:
    """Call the completion endpoint and return the parsed JSON object.

    Args:
        prompt: User message content (schema + instructions + email body).
        system: System prompt.
        model: Model ID, defaults to settings.openai_model.
        max_tokens: Max output tokens.
        temperature: Keep low for extraction.
        timeout: Request timeout seconds.
        max_retries: Attempt budget, defaults to settings.llm_max_retries.
        base_delay: Backoff base in seconds.

    Returns:
        Parsed JSON object.

    Raises:
        CompletionError: no API key, or the attempt budget was exhausted.
    """
    if not settings.openai_api_key:
        raise CompletionError("OPENAI_API_KEY is not set")

    resolved_model = model or settings.openai_model
    attempts = max(1, max_retries or settings.llm_max_retries)
    delay_base = settings.llm_retry_base_delay if base_delay is None else base_delay
    url = settings.openai_base_url.rstrip("/") + "/chat/completions"

    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    body = {
        "model": resolved_model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
    }

    last_error: Exception | None = None
    for attempt in range(attempts):
        try:
            start = time.monotonic()
            resp = await http.post(
                url,
                headers=_headers(),
                json=body,
                timeout=timeout or settings.llm_timeout_seconds,
            )
            elapsed = time.monotonic() - start

            if resp.status_code != 200:
                if resp.status_code not in RETRYABLE_STATUSES:
                    raise CompletionError(
                        f"completion endpoint returned {resp.status_code}: {resp.text[:200]}",
                        attempts=attempt + 1,
                    )
                raise httpx.HTTPStatusError(
                    f"retryable status {resp.status_code}", request=resp.request, response=resp
                )

            data = resp.json()
            usage = data.get("usage", {})
            logger.info(
                "Completion OK | model={} | in={} | out={} | {:.1f}s",
                resolved_model,
                usage.get("prompt_tokens", "?"),
                usage.get("completion_tokens", "?"),
                elapsed,
            )
            parsed = parse_json_text(_extract_text(data) or "")
            if not isinstance(parsed, dict):
                raise _MalformedCompletion("completion was not a JSON object")
            return parsed

        except CompletionError:
            raise
        except (httpx.HTTPError, ValueError, _MalformedCompletion) as e:
            last_error = e
            if attempt < attempts - 1:
                delay = delay_base * (2 ** attempt)
                logger.warning(
                    "Completion failed (attempt {}/{}), retry in {:.1f}s: {}",
                    attempt + 1, attempts, delay, e,
                )
                await asyncio.sleep(delay)
                continue

    logger.error("Completion failed after {} attempts: {}", attempts, last_error)
    raise CompletionError(
        f"completion failed after {attempts} attempts: {last_error}", attempts=attempts
    )

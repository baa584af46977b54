from __future__ import annotations

import json
import logging
import os
import re
import typing as t
import urllib.error
import urllib.request

from review_coach.errors import CompletionServiceError, UpstreamServiceError

JsonDict = dict[str, t.Any]

logger = logging.getLogger(__name__)


def env_timeout(name: str) -> float | None:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return None
    return value if value > 0 else None


def strip_code_fences(text: str) -> str:
    s = text.strip()
    start_fence = s.find("```")
    if start_fence != -1:
        # skip an optional language tag such as ```json
        match = re.search(r"```[a-zA-Z0-9_-]*\s*", s[start_fence:])
        if match:
            content_start = start_fence + match.end()
            end_fence = s.find("```", content_start)
            if end_fence != -1:
                return s[content_start:end_fence].strip()
            return s[content_start:].strip()
    return s


def parse_json_object(text: str) -> JsonDict | None:
    """Return the JSON object in ``text`` (code fences allowed), or None."""
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def post_json(
    url: str,
    payload: JsonDict,
    *,
    headers: dict[str, str],
    timeout_s: float | None,
    service: str,
    error_cls: type[UpstreamServiceError],
) -> JsonDict:
    """POST ``payload`` once and decode the JSON reply.

    Non-2xx statuses, transport failures and non-JSON bodies are raised as
    ``error_cls``; there is no retry.
    """
    req = urllib.request.Request(
        url,
        data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    kwargs: dict[str, t.Any] = {}
    if timeout_s is not None:
        kwargs["timeout"] = timeout_s
    try:
        with urllib.request.urlopen(req, **kwargs) as resp:
            raw = resp.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        body = None
        try:
            body = e.read().decode("utf-8")
        except Exception:
            body = None
        logger.warning("%s returned HTTP %s", service, e.code)
        raise error_cls(f"{service} API error: {e.code}", status=e.code, body=body) from e
    except urllib.error.URLError as e:
        logger.warning("%s request failed: %s", service, e.reason)
        raise error_cls(f"{service} request failed: {e.reason}") from e
    except OSError as e:
        logger.warning("%s connection error: %s", service, e)
        raise error_cls(f"{service} request failed: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise error_cls(f"{service} returned invalid JSON: {raw[:500]}", body=raw) from e
    if not isinstance(data, dict):
        raise error_cls(f"{service} returned an unexpected body: {raw[:500]}", body=raw)
    return t.cast(JsonDict, data)


class OpenAIClient:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4",
        vision_model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("API key is required")
        self.api_key = api_key
        self.model = os.environ.get("OPENAI_MODEL") or model
        self.vision_model = os.environ.get("OPENAI_VISION_MODEL") or vision_model
        self.base_url = (os.environ.get("OPENAI_BASE_URL") or base_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else env_timeout("OPENAI_TIMEOUT_S")

    def _completion_content(self, data: JsonDict, error_cls: type[UpstreamServiceError]) -> str:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            raise error_cls("OpenAI returned no choices.")
        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, list):
            content = "\n".join(
                str(p.get("text")) for p in content if isinstance(p, dict) and p.get("text")
            )
        if not isinstance(content, str) or not content.strip():
            raise error_cls(f"OpenAI returned no content. Finish reason: {choices[0].get('finish_reason')}")
        return content

    def chat(
        self,
        *,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        model: str | None = None,
    ) -> str:
        messages: list[JsonDict] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        return self.complete(
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            model=model,
        )

    def complete(
        self,
        *,
        messages: list[JsonDict],
        max_tokens: int,
        temperature: float,
        model: str | None = None,
        error_cls: type[UpstreamServiceError] = CompletionServiceError,
    ) -> str:
        payload: JsonDict = {
            "model": model or self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        logger.debug("chat/completions model=%s max_tokens=%s", payload["model"], max_tokens)
        data = post_json(
            f"{self.base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout_s=self.timeout_s,
            service="OpenAI",
            error_cls=error_cls,
        )
        return self._completion_content(data, error_cls)

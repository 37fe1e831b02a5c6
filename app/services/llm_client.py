"""OpenAI-compatible LLM client with bounded timeouts and retries."""

import hashlib
import json
import logging
from typing import Dict, List, Optional

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from app.config import Settings, require_openai_api_key, settings
from app.errors import ConfigError, ServiceError
from app.schemas.generation import CompletionRequest

logger = logging.getLogger(__name__)

# Allowed models whitelist
ALLOWED_MODELS = [
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4.1-mini",
    "gpt-4.1",
]

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


class LLMClient:
    """Client for the chat completions API.

    Built once at process start and passed to the generation pipeline; holds
    no per-request state.
    """

    def __init__(
        self,
        config: Settings = settings,
        http_client: Optional[httpx.Client] = None,
        retry_wait_multiplier: float = 1.0,
    ):
        """Initialize the LLM client.

        Raises:
            ConfigError: If no API key is configured
        """
        self.api_key = require_openai_api_key(config)
        self.base_url = config.OPENAI_BASE_URL.rstrip("/")
        self.default_model = config.LLM_MODEL
        self.timeout = config.LLM_TIMEOUT_SECONDS
        self.max_attempts = max(1, config.LLM_MAX_ATTEMPTS)
        self.retry_wait_multiplier = retry_wait_multiplier
        self._http_client = http_client

    def _hash_text(self, text: str) -> str:
        """Hash text using SHA256."""
        return hashlib.sha256(text.encode()).hexdigest()

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _add_format_instructions(self, messages: List[Dict[str, str]], is_json: bool = False) -> List[Dict[str, str]]:
        """Remind the model of the JSON contract in the system message."""
        if not is_json:
            return messages

        format_message = "Return valid JSON only. Do not include explanations or markdown."
        if messages and messages[0].get("role") == "system":
            messages[0]["content"] = messages[0]["content"] + "\n\n" + format_message
        else:
            messages.insert(0, {"role": "system", "content": format_message})
        return messages

    def _post(self, payload: Dict) -> httpx.Response:
        url = f"{self.base_url}/chat/completions"
        if self._http_client is not None:
            response = self._http_client.post(url, headers=self._build_headers(), json=payload, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, headers=self._build_headers(), json=payload)

        if response.status_code in RETRYABLE_STATUS_CODES:
            logger.warning(f"Retryable error {response.status_code} from generation service")
        response.raise_for_status()
        return response

    def chat_completion(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False,
    ) -> str:
        """
        Call the chat completions API.

        Args:
            model: Model identifier from ALLOWED_MODELS
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            json_mode: Whether to request JSON output

        Returns:
            Response content as string

        Raises:
            ConfigError: If model not in whitelist
            ServiceError: On transport errors, non-2xx responses after
                retries, timeouts, or an empty completion
        """
        if model not in ALLOWED_MODELS:
            raise ConfigError(f"Model {model} not in allowed whitelist")

        messages = self._add_format_instructions([dict(m) for m in messages], is_json=json_mode)

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        request_hash = self._hash_text(json.dumps(payload, sort_keys=True, ensure_ascii=False))
        logger.info(f"LLM request to {model}, hash: {request_hash[:16]}")

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.retry_wait_multiplier, min=0, max=10),
                retry=retry_if_exception(_is_retryable),
                reraise=True,
            ):
                with attempt:
                    response = self._post(payload)
        except httpx.HTTPStatusError as e:
            raise ServiceError(
                f"Generation service returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise ServiceError(f"Generation service timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ServiceError(f"Generation service request failed: {e}") from e

        try:
            result = response.json()
            content = result["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ServiceError("Generation service returned a malformed completion") from e

        if not content or not content.strip():
            raise ServiceError("Generation service returned an empty response")

        response_hash = self._hash_text(content)
        logger.info(f"LLM response hash: {response_hash[:16]}")

        return content

    def complete(self, request: CompletionRequest) -> str:
        """Run one completion round trip described by a CompletionRequest."""
        messages = [
            {"role": "system", "content": request.system},
            {"role": "user", "content": request.user},
        ]
        return self.chat_completion(
            model=request.model or self.default_model,
            messages=messages,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            json_mode=request.json_mode,
        )

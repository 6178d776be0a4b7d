"""HTTP completion provider for Ollama and OpenAI-compatible chat APIs."""

import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from ..core.exceptions import ConfigurationError, ProviderError
from ..core.logging import get_logger
from ..models.core import ChatMessage, ProviderConfig

logger = get_logger(__name__)

VALID_ROLES = ("system", "user", "assistant")


def validate_provider_config(config: ProviderConfig) -> None:
    """
    Check a provider configuration before any request is made.

    Raises:
        ConfigurationError: If a required setting is missing or out of range
    """
    if not config.provider:
        raise ConfigurationError("Provider is required", config_key="provider")

    if not config.base_url:
        raise ConfigurationError("Base URL is required", config_key="base_url")

    parsed = urlparse(config.base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Invalid Base URL format: {config.base_url}", config_key="base_url")

    if not config.is_ollama and not config.api_key:
        raise ConfigurationError("API Key is required for non-local providers", config_key="api_key")

    if config.temperature is not None and not 0 <= config.temperature <= 2:
        raise ConfigurationError("Temperature must be between 0 and 2", config_key="temperature")


def validate_messages(messages: List[ChatMessage]) -> None:
    """
    Check the message list sent to the provider.

    Raises:
        ConfigurationError: If the list is empty or a message is malformed
    """
    if not messages:
        raise ConfigurationError("Messages array cannot be empty")

    for message in messages:
        if message.role not in VALID_ROLES:
            raise ConfigurationError(f"Invalid role in message: {message.role}")
        if not isinstance(message.content, str) or not message.content.strip():
            raise ConfigurationError("Message content cannot be empty")


def _openai_base(base_url: str) -> str:
    base = base_url.rstrip("/")
    if not base.endswith("/v1"):
        base += "/v1"
    return base


def _build_request(messages: List[Dict[str, str]], config: ProviderConfig):
    """Return (url, headers, body) for the configured provider."""
    headers = {"Content-Type": "application/json"}

    if config.is_ollama:
        url = f"{config.base_url.rstrip('/')}/api/chat"
        options = {
            "temperature": config.temperature,
            "top_p": config.top_p,
            "num_predict": config.max_tokens,
        }
        body: Dict[str, Any] = {
            "model": config.model,
            "messages": messages,
            "stream": False,
            "options": {key: value for key, value in options.items() if value is not None},
        }
    else:
        url = f"{_openai_base(config.base_url)}/chat/completions"
        headers["Authorization"] = f"Bearer {config.api_key}"
        body = {
            "model": config.model,
            "messages": messages,
            "temperature": config.temperature if config.temperature is not None else 0.7,
            "top_p": config.top_p if config.top_p is not None else 1.0,
        }
        if config.max_tokens is not None:
            body["max_tokens"] = config.max_tokens

    return url, headers, body


def _extract_reply(data: Any, config: ProviderConfig) -> Optional[str]:
    try:
        if config.is_ollama:
            return data["message"]["content"]
        return data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None


def generate_completion(messages: List[ChatMessage], config: ProviderConfig) -> str:
    """
    Send a chat completion request and return the generated text.

    The configured system prompt is prepended unless the messages already
    start with a system message.

    Args:
        messages: Ordered role-tagged messages
        config: Provider settings

    Returns:
        The generated text

    Raises:
        ConfigurationError: If the configuration or messages are invalid
        ProviderError: On transport errors, non-2xx responses or unusable replies
    """
    validate_provider_config(config)
    validate_messages(messages)

    payload = [{"role": message.role, "content": message.content} for message in messages]
    if config.system_prompt and messages[0].role != "system":
        payload.insert(0, {"role": "system", "content": config.system_prompt})

    url, headers, body = _build_request(payload, config)
    logger.info(f"Requesting {config.provider} at {url}")

    try:
        response = requests.post(url, json=body, headers=headers, timeout=config.timeout)
    except requests.RequestException as e:
        raise ProviderError(f"Request to {config.provider} failed: {e}", provider=config.provider)

    if not response.ok:
        raise ProviderError(
            f"API Error: {response.status_code} - {response.text}",
            provider=config.provider,
            status_code=response.status_code
        )

    try:
        data = response.json()
    except ValueError:
        raise ProviderError(f"{config.provider} returned a non-JSON response", provider=config.provider)

    reply = _extract_reply(data, config)
    if not reply:
        raise ProviderError(f"{config.provider} returned empty content", provider=config.provider)
    return reply


def check_connection(config: ProviderConfig) -> Dict[str, Any]:
    """
    Probe the provider's model listing endpoint.

    Returns:
        ``{"success": bool, "latency_ms": int, "message": str | None}``
    """
    headers = {"Content-Type": "application/json"}
    if config.is_ollama:
        probe_url = f"{config.base_url.rstrip('/')}/api/tags"
    else:
        probe_url = f"{_openai_base(config.base_url)}/models"
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

    start = time.perf_counter()
    try:
        response = requests.get(probe_url, headers=headers, timeout=min(config.timeout, 5.0))
    except requests.RequestException as e:
        logger.warning(f"Connection check to {probe_url} failed: {e}")
        return {"success": False, "latency_ms": 0, "message": str(e)}

    if not response.ok:
        return {"success": False, "latency_ms": 0, "message": f"Status: {response.status_code}"}

    latency_ms = round((time.perf_counter() - start) * 1000)
    return {"success": True, "latency_ms": latency_ms, "message": None}

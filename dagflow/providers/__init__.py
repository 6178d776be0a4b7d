"""Completion providers for ``llm`` nodes."""

from .llm import generate_completion, check_connection, validate_provider_config, validate_messages

__all__ = [
    "generate_completion",
    "check_connection",
    "validate_provider_config",
    "validate_messages",
]

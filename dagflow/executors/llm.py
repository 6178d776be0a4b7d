"""LLM call executor."""

from typing import Any, Callable, Dict, List, Optional

from ..core.exceptions import ExecutionFault
from ..core.logging import get_logger
from ..models.core import ChatMessage, Node, NodeKind, ProviderConfig
from .base import NodeExecutor, combine_text, fill_template

logger = get_logger(__name__)

CompletionProvider = Callable[[List[ChatMessage], ProviderConfig], str]

INPUT_SEPARATOR = "\n---\n"
NO_INPUT_PLACEHOLDER = "[No input data]"

# Node config keys that override the run's provider settings
_OVERRIDE_KEYS = ("base_url", "api_key", "temperature", "top_p", "max_tokens")


class LLMExecutor(NodeExecutor):
    """Sends upstream text to the completion provider and returns the generated text.

    Any exception raised by the provider fails the node with the provider's
    message unchanged.
    """

    kind = NodeKind.LLM
    requires_input = False

    def __init__(self, provider: Optional[CompletionProvider] = None):
        if provider is None:
            from ..providers.llm import generate_completion
            provider = generate_completion
        self.provider = provider

    def execute(self, node: Node, inputs: Dict[str, Any], context) -> str:
        provider_config = self.node_provider_config(node, context.provider_config)
        messages = self.compose_messages(node, inputs, provider_config)

        logger.debug(f"Node {node.id} calling {provider_config.provider} model {provider_config.model}")
        try:
            text = self.provider(messages, provider_config)
        except ExecutionFault:
            raise
        except Exception as e:
            raise self.fault(node, str(e) or e.__class__.__name__)

        if not isinstance(text, str):
            raise self.fault(node, f"Provider returned {type(text).__name__} instead of text")
        return text

    def compose_messages(self, node: Node, inputs: Dict[str, Any], provider_config: ProviderConfig) -> List[ChatMessage]:
        """Build the system and user messages for a node."""
        combined = combine_text(inputs, INPUT_SEPARATOR)

        template = node.config.get("template")
        content = fill_template(template, combined, inputs) if template else combined
        if not content.strip():
            content = NO_INPUT_PLACEHOLDER

        messages = []
        system_prompt = node.config.get("system_prompt") or node.config.get("prompt") or provider_config.system_prompt
        if system_prompt:
            messages.append(ChatMessage(role="system", content=system_prompt))
        messages.append(ChatMessage(role="user", content=content))
        return messages

    def node_provider_config(self, node: Node, base: ProviderConfig) -> ProviderConfig:
        """Apply per-node overrides on top of the run's provider settings."""
        updates = {key: node.config[key] for key in _OVERRIDE_KEYS if node.config.get(key) is not None}

        model = node.config.get("model")
        if model and model != "auto":
            updates["model"] = model

        # The system prompt travels as a message; the provider must not add a second one
        updates["system_prompt"] = None
        return base.model_copy(update=updates)

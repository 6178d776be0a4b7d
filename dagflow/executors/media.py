"""Placeholder executors for the media generation node kinds."""

import time
from typing import Any, Dict

from ..models.core import Node, NodeKind
from ..core.logging import get_logger
from .base import NodeExecutor, combine_text

logger = get_logger(__name__)

# The voice synthesis subsystem is disabled; every audio node fails with this message.
AUDIO_FAULT_MESSAGE = "CRITICAL FAULT: audio_synth module corrupted [ERR_CODE: 0x503_VOICE_MOD]"

DEFAULT_IMAGE_PROMPT = "cyberpunk landscape"


class ImageStubExecutor(NodeExecutor):
    """Simulated image generation. Produces a placeholder marker, never an image."""

    kind = NodeKind.IMAGE_STUB
    requires_input = False

    def execute(self, node: Node, inputs: Dict[str, Any], context) -> Dict[str, Any]:
        prompt = node.config.get("prompt") or combine_text(inputs, " ") or DEFAULT_IMAGE_PROMPT

        delay_ms = node.config.get("delay_ms", 0)
        if delay_ms:
            time.sleep(delay_ms / 1000.0)

        logger.debug(f"Image placeholder generated for node {node.id}")
        return {
            "type": "image_placeholder",
            "prompt": prompt,
            "width": node.config.get("width", 1024),
            "height": node.config.get("height", 1024),
            "url": None,
        }


class AudioStubExecutor(NodeExecutor):
    """Permanently faulted audio synthesis."""

    kind = NodeKind.AUDIO_STUB
    requires_input = False

    def execute(self, node: Node, inputs: Dict[str, Any], context) -> Any:
        raise self.fault(node, AUDIO_FAULT_MESSAGE)

"""Text source and output sink executors."""

from typing import Any, Dict

from ..models.core import Node, NodeKind
from .base import NodeExecutor, render_text


class SourceTextExecutor(NodeExecutor):
    """Emits the static text from ``config.text`` (``value`` and ``prompt`` are accepted aliases)."""

    kind = NodeKind.SOURCE_TEXT
    requires_input = False

    def execute(self, node: Node, inputs: Dict[str, Any], context) -> str:
        for key in ("text", "value", "prompt"):
            value = node.config.get(key)
            if value is not None:
                return value if isinstance(value, str) else render_text(value)
        return ""


class OutputExecutor(NodeExecutor):
    """Terminal sink recording its input.

    A single input is recorded unchanged. Several inputs are merged as text
    (``format: merge``, the default) or kept as a mapping of upstream id to
    value (``format: json``). No input is recorded as an empty string.
    """

    kind = NodeKind.OUTPUT
    requires_input = False

    MERGE_SEPARATOR = "\n\n---\n\n"

    def execute(self, node: Node, inputs: Dict[str, Any], context) -> Any:
        if not inputs:
            return ""
        if len(inputs) == 1:
            return next(iter(inputs.values()))

        if node.config.get("format") == "json":
            return dict(inputs)
        return self.MERGE_SEPARATOR.join(render_text(value) for value in inputs.values())

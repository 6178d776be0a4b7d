"""Executor interface shared by every node kind."""

import json
import re
from typing import Any, Dict

from ..core.exceptions import ExecutionFault
from ..models.core import Node, NodeKind

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")


class NodeExecutor:
    """Runs one node kind.

    ``execute`` receives the node, its upstream outputs keyed by upstream node id
    and the run context, and returns the node's output. Raising
    :class:`ExecutionFault` marks the node failed.
    """

    kind: NodeKind
    #: Whether a node with incoming edges is skipped when none of them deliver a value
    requires_input: bool = True

    def execute(self, node: Node, inputs: Dict[str, Any], context) -> Any:
        raise NotImplementedError

    def fault(self, node: Node, message: str) -> ExecutionFault:
        return ExecutionFault(message, node_id=node.id)


def render_text(value: Any) -> str:
    """Text rendering used when a value flows into a text-oriented node."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def combine_text(inputs: Dict[str, Any], separator: str) -> str:
    """Join the text renderings of all non-empty inputs."""
    texts = [render_text(value) for value in inputs.values()]
    return separator.join(text for text in texts if text)


def fill_template(template: str, combined: str, inputs: Dict[str, Any]) -> str:
    """Substitute ``{{input}}`` and ``{{<upstream id>}}`` placeholders.

    Whitespace inside the braces is ignored. Placeholders naming neither are
    left as written.
    """
    def substitute(match):
        name = match.group(1)
        if name == "input":
            return combined
        if name in inputs:
            return render_text(inputs[name])
        return match.group(0)

    return _PLACEHOLDER.sub(substitute, template)

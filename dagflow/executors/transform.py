"""Transform executor: applies one named pure operation to the upstream value."""

import json
import re
from typing import Any, Callable, Dict

from ..models.core import Node, NodeKind
from .base import NodeExecutor, fill_template, render_text

_TAG_PATTERN = re.compile(r"<[^>]*>")
_UNSAFE_CHARS = re.compile(r"[<>\"'&]")
_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")


class TransformExecutor(NodeExecutor):
    """Applies ``config.operation`` to its input.

    With one upstream node the raw value is transformed. With several, the text
    renderings of all inputs joined by newlines are used instead. Unknown
    operations and type mismatches fail the node.
    """

    kind = NodeKind.TRANSFORM

    def __init__(self):
        self._operations: Dict[str, Callable[[Node, Any, Dict[str, Any]], Any]] = {
            "passthrough": lambda node, value, inputs: value,
            "uppercase": lambda node, value, inputs: self._text(node, value, "uppercase").upper(),
            "lowercase": lambda node, value, inputs: self._text(node, value, "lowercase").lower(),
            "trim": lambda node, value, inputs: self._text(node, value, "trim").strip(),
            "sanitize": self._sanitize,
            "truncate": self._truncate,
            "slice": self._slice,
            "concat": self._concat,
            "template": self._template,
            "json_parse": self._json_parse,
            "json_stringify": self._json_stringify,
            "extract_json": self._extract_json,
            "word_count": self._word_count,
            "split_lines": self._split_lines,
            "to_number": self._to_number,
        }

    @property
    def operations(self):
        return sorted(self._operations)

    def execute(self, node: Node, inputs: Dict[str, Any], context) -> Any:
        operation = node.config.get("operation", "passthrough")
        apply = self._operations.get(operation)
        if apply is None:
            raise self.fault(node, f"Unknown transform operation '{operation}'")

        if len(inputs) == 1:
            value = next(iter(inputs.values()))
        elif inputs:
            value = "\n".join(render_text(item) for item in inputs.values())
        else:
            value = ""

        return apply(node, value, inputs)

    def _text(self, node: Node, value: Any, operation: str) -> str:
        if not isinstance(value, str):
            raise self.fault(node, f"Operation '{operation}' expects text input, got {type(value).__name__}")
        return value

    def _int_option(self, node: Node, key: str, default=None):
        option = node.config.get(key, default)
        if option is None:
            return None
        if isinstance(option, bool) or not isinstance(option, int):
            raise self.fault(node, f"Config '{key}' must be an integer, got {option!r}")
        return option

    def _sanitize(self, node, value, inputs):
        text = self._text(node, value, "sanitize")
        return _UNSAFE_CHARS.sub("", _TAG_PATTERN.sub("", text)).strip()

    def _truncate(self, node, value, inputs):
        text = self._text(node, value, "truncate")
        max_length = self._int_option(node, "max_length", 500)
        if len(text) <= max_length:
            return text
        return text[:max_length] + f"\n...[Truncated at {max_length} chars]"

    def _slice(self, node, value, inputs):
        if not isinstance(value, (str, list)):
            raise self.fault(node, f"Operation 'slice' expects text or list input, got {type(value).__name__}")
        start = self._int_option(node, "start")
        end = self._int_option(node, "end")
        return value[start:end]

    def _concat(self, node, value, inputs):
        separator = node.config.get("separator", "")
        if len(inputs) > 1:
            parts = [render_text(item) for item in inputs.values()]
        elif isinstance(value, list):
            parts = [render_text(item) for item in value]
        else:
            parts = [render_text(value)]
        return separator.join(parts)

    def _template(self, node, value, inputs):
        template = node.config.get("template", "{{input}}")
        if not isinstance(template, str):
            raise self.fault(node, "Config 'template' must be a string")
        return fill_template(template, render_text(value), inputs)

    def _json_parse(self, node, value, inputs):
        text = self._text(node, value, "json_parse")
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise self.fault(node, f"Invalid JSON input: {e}")

    def _json_stringify(self, node, value, inputs):
        indent = self._int_option(node, "indent")
        compact = node.config.get("compact", True)
        if not isinstance(compact, bool):
            raise self.fault(node, f"Config 'compact' must be a boolean, got {compact!r}")
        # Compact output matches JavaScript's JSON.stringify
        separators = (",", ":") if compact and indent is None else None
        try:
            return json.dumps(value, ensure_ascii=False, indent=indent, separators=separators)
        except (TypeError, ValueError) as e:
            raise self.fault(node, f"Value is not JSON serializable: {e}")

    def _extract_json(self, node, value, inputs):
        text = self._text(node, value, "extract_json")
        match = _FENCED_JSON.search(text) or _BARE_OBJECT.search(text)
        if match is None:
            raise self.fault(node, "No JSON found in input")
        candidate = match.group(1) if match.re is _FENCED_JSON else match.group(0)
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise self.fault(node, f"JSON extraction failed: {e}")
        return json.dumps(parsed, ensure_ascii=False, indent=2)

    def _word_count(self, node, value, inputs):
        text = self._text(node, value, "word_count")
        return {
            "words": len(text.split()),
            "characters": len(text),
            "lines": len(text.split("\n")),
        }

    def _split_lines(self, node, value, inputs):
        text = self._text(node, value, "split_lines")
        return [line for line in text.split("\n") if line.strip()]

    def _to_number(self, node, value, inputs):
        if isinstance(value, bool):
            raise self.fault(node, "Operation 'to_number' cannot cast a boolean")
        if isinstance(value, (int, float)):
            return value
        text = self._text(node, value, "to_number").strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise self.fault(node, f"Cannot convert {text!r} to a number")

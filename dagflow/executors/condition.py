"""Condition executor: evaluates a rule and decides which outgoing edges stay active."""

import re
from typing import Any, Callable, Dict, Tuple

from ..core.execution_context import ConditionDecision
from ..models.core import Node, NodeKind
from .base import NodeExecutor, render_text

RISKY_KEYWORDS = ("hack", "exploit", "injection", "malware", "password", "credential")


class ConditionExecutor(NodeExecutor):
    """Evaluates ``config.rule`` against the upstream value.

    The decision is stored in the run context. Outgoing edges on the ``false``
    handle stay active when the rule fails; every other outgoing edge stays
    active only when it passes.
    """

    kind = NodeKind.CONDITION

    def __init__(self):
        self._rules: Dict[str, Callable[[Node, Any], Tuple[bool, str]]] = {
            "not_empty": self._not_empty,
            "content_safety": self._content_safety,
            "length_check": self._length_check,
            "keyword_filter": self._keyword_filter,
            "contains": self._contains,
            "equals": self._equals,
            "regex": self._regex,
            "greater_than": self._greater_than,
            "less_than": self._less_than,
            "truthy": self._truthy,
        }

    @property
    def rules(self):
        return sorted(self._rules)

    def execute(self, node: Node, inputs: Dict[str, Any], context) -> Dict[str, Any]:
        rule = node.config.get("rule", "not_empty")
        evaluate = self._rules.get(rule)
        if evaluate is None:
            raise self.fault(node, f"Unknown condition rule '{rule}'")

        if len(inputs) == 1:
            subject = next(iter(inputs.values()))
        else:
            subject = " ".join(render_text(value) for value in inputs.values())

        try:
            passed, reason = evaluate(node, subject)
        except (TypeError, ValueError, re.error) as e:
            raise self.fault(node, f"Condition '{rule}' could not be evaluated: {e}")

        decision = ConditionDecision(passed=passed, rule=rule, reason=reason)
        context.record_decision(node.id, decision)
        return decision.to_output()

    def _not_empty(self, node, subject):
        passed = render_text(subject).strip() != ""
        return passed, "Not-empty check passed" if passed else "Input is empty"

    def _content_safety(self, node, subject):
        text = render_text(subject).lower()
        found = next((keyword for keyword in RISKY_KEYWORDS if keyword in text), None)
        if found:
            return False, f"Risky keyword detected: \"{found}\""
        return True, "Content safety check passed"

    def _length_check(self, node, subject):
        max_length = int(node.config.get("max_length", 1000))
        length = len(render_text(subject))
        if length <= max_length:
            return True, f"Length check passed ({length}/{max_length})"
        return False, f"Content too long ({length}/{max_length})"

    def _keyword_filter(self, node, subject):
        keywords = node.config.get("keywords", [])
        if isinstance(keywords, str):
            keywords = keywords.split(",")
        keywords = [keyword.strip().lower() for keyword in keywords if keyword.strip()]

        text = render_text(subject).lower()
        found = next((keyword for keyword in keywords if keyword in text), None)
        if found:
            return False, f"Keyword hit: \"{found}\""
        return True, "Keyword filter passed"

    def _contains(self, node, subject):
        needle = self._required(node, "value")
        passed = str(needle) in render_text(subject)
        return passed, f"Input {'contains' if passed else 'does not contain'} \"{needle}\""

    def _equals(self, node, subject):
        expected = self._required(node, "value")
        passed = subject == expected or render_text(subject) == render_text(expected)
        return passed, f"Input {'equals' if passed else 'differs from'} {render_text(expected)!r}"

    def _regex(self, node, subject):
        pattern = self._required(node, "pattern")
        passed = re.search(pattern, render_text(subject)) is not None
        return passed, f"Pattern /{pattern}/ {'matched' if passed else 'did not match'}"

    def _greater_than(self, node, subject):
        value, threshold = self._numbers(node, subject)
        passed = value > threshold
        return passed, f"{value} {'>' if passed else '<='} {threshold}"

    def _less_than(self, node, subject):
        value, threshold = self._numbers(node, subject)
        passed = value < threshold
        return passed, f"{value} {'<' if passed else '>='} {threshold}"

    def _truthy(self, node, subject):
        if isinstance(subject, str):
            passed = subject.strip().lower() not in ("", "false", "0", "no", "null", "none")
        else:
            passed = bool(subject)
        return passed, "Input is truthy" if passed else "Input is falsy"

    def _required(self, node: Node, key: str) -> Any:
        if key not in node.config:
            raise ValueError(f"missing config key '{key}'")
        return node.config[key]

    def _numbers(self, node: Node, subject: Any) -> Tuple[float, float]:
        threshold = float(self._required(node, "value"))
        if isinstance(subject, bool):
            raise TypeError("boolean input is not numeric")
        if isinstance(subject, (int, float)):
            return float(subject), threshold
        return float(render_text(subject).strip()), threshold

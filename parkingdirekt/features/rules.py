"""Targeting rule trees and rollout bucketing for feature flags.

A rule tree is either a group node::

    {"operator": "and" | "or", "rules": [<node>, ...]}

or a leaf::

    {"type": "role", "operator": "in", "value": ["ADMIN", "SUPER_ADMIN"]}

Leaf ``type`` is one of user_id, role, email_domain, percentage, custom.
``field`` names the context key to read; it defaults to ``user_id``,
``role`` and ``email`` for the first three types and is required for custom
rules. Percentage leaves pass when the caller's rollout bucket is at most
``percentage``.
"""
import hashlib
import json
from typing import Any, Mapping, Optional

GROUP_OPERATORS = ("and", "or")
COMPARISON_OPERATORS = ("equals", "not_equals", "in", "not_in", "contains")
RULE_TYPES = ("user_id", "role", "email_domain", "percentage", "custom")

DEFAULT_FIELDS = {
    "user_id": "user_id",
    "role": "role",
    "email_domain": "email",
}

ANONYMOUS_IDENTIFIER = "anonymous"


class RuleError(ValueError):
    """Raised when a rule tree is malformed."""


def rollout_identifier(context: Mapping[str, Any]) -> str:
    """Stable identifier for bucketing: user id, else email, else "anonymous"."""
    return str(context.get("user_id") or context.get("email") or ANONYMOUS_IDENTIFIER)


def rollout_bucket(identifier: str) -> int:
    """
    Deterministic rollout bucket in [1, 100].

    The first 32 bits of the MD5 digest are read as an unsigned integer and
    reduced modulo 100. MD5 serves only as a stable, well-spread hash here.
    """
    digest = hashlib.md5(identifier.encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % 100 + 1


def compare_values(actual: Any, expected: Any, operator: str) -> bool:
    """Compare a context value against a rule literal."""
    if operator == "not_equals":
        return actual != expected
    if operator == "in":
        return isinstance(expected, (list, tuple)) and actual in expected
    if operator == "not_in":
        return isinstance(expected, (list, tuple)) and actual not in expected
    if operator == "contains":
        if isinstance(actual, (list, tuple, set)):
            return expected in actual
        haystack = "" if actual is None else str(actual)
        return str(expected) in haystack
    return actual == expected


def _email_domain(value: Any) -> Optional[str]:
    if not isinstance(value, str) or "@" not in value:
        return None
    return value.split("@", 1)[1]


def evaluate_rule(rule: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    """
    Evaluate a validated rule tree against a context.

    Args:
        rule: Group or leaf node
        context: Evaluation context (user_id, role, email and any custom fields)

    Returns:
        True if the context satisfies the tree
    """
    if "rules" in rule:
        results = (evaluate_rule(child, context) for child in rule["rules"])
        if rule.get("operator", "and") == "or":
            return any(results)
        return all(results)

    rule_type = rule["type"]
    operator = rule.get("operator", "equals")

    if rule_type == "percentage":
        threshold = rule.get("percentage", rule.get("value"))
        return rollout_bucket(rollout_identifier(context)) <= float(threshold)

    field = rule.get("field") or DEFAULT_FIELDS.get(rule_type)
    actual = context.get(field) if field else None

    if rule_type == "email_domain":
        domain = _email_domain(actual)
        if domain is None:
            return False
        return compare_values(domain, rule["value"], operator)

    return compare_values(actual, rule["value"], operator)


def validate_rule_tree(rule: Any, path: str = "conditions") -> None:
    """
    Check that a rule tree is well formed.

    Raises:
        RuleError: With the path of the first offending node
    """
    if not isinstance(rule, Mapping):
        raise RuleError(f"{path} must be an object")

    if "rules" in rule:
        operator = rule.get("operator", "and")
        if operator not in GROUP_OPERATORS:
            raise RuleError(f"{path}.operator must be one of: {', '.join(GROUP_OPERATORS)}")
        children = rule["rules"]
        if not isinstance(children, list) or not children:
            raise RuleError(f"{path}.rules must be a non-empty list")
        for index, child in enumerate(children):
            validate_rule_tree(child, f"{path}.rules[{index}]")
        return

    rule_type = rule.get("type")
    if rule_type not in RULE_TYPES:
        raise RuleError(f"{path}.type must be one of: {', '.join(RULE_TYPES)}")

    if rule_type == "percentage":
        threshold = rule.get("percentage", rule.get("value"))
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0 <= threshold <= 100:
            raise RuleError(f"{path}.percentage must be a number between 0 and 100")
        return

    operator = rule.get("operator", "equals")
    if operator not in COMPARISON_OPERATORS:
        raise RuleError(f"{path}.operator must be one of: {', '.join(COMPARISON_OPERATORS)}")
    if "value" not in rule:
        raise RuleError(f"{path}.value is required")
    if operator in ("in", "not_in") and not isinstance(rule["value"], list):
        raise RuleError(f"{path}.value must be a list for operator '{operator}'")
    if rule_type == "custom" and not rule.get("field"):
        raise RuleError(f"{path}.field is required for custom rules")


def normalize_conditions(conditions: Optional[Mapping[str, Any]]) -> Optional[dict[str, Any]]:
    """Validate a rule tree for storage; empty trees mean "no conditions"."""
    if conditions is None or conditions == {}:
        return None
    validate_rule_tree(conditions)
    return dict(conditions)


def load_conditions(raw: Optional[str]) -> Optional[dict[str, Any]]:
    """
    Parse stored conditions.

    Raises:
        RuleError: If the stored text is not a valid rule tree
    """
    if not raw:
        return None
    try:
        tree = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise RuleError(f"conditions are not valid JSON: {e}") from e
    return normalize_conditions(tree)


def dump_conditions(conditions: Optional[Mapping[str, Any]]) -> Optional[str]:
    normalized = normalize_conditions(conditions)
    return json.dumps(normalized, sort_keys=True) if normalized is not None else None

"""Rule tree codec for dynamic device groups.

LibreNMS stores group rules as a jQuery QueryBuilder JSON document. The
structured form supports AND/OR conditions, ordered children, optional join
paths and text/string predicates. Anything richer goes through the raw
``rules_json`` override.

Encoding is canonical: the same tree always produces the same bytes, so
comparing encoded strings is a meaningful diff.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from .errors import ConflictingRuleRepresentation, MalformedRuleTree, UnsupportedRuleTree
from .schema import is_unset

CONDITIONS = ("AND", "OR")

# The only input/type pair the remote system accepts through this path.
PREDICATE_INPUT = "text"
PREDICATE_TYPE = "string"


@dataclass(frozen=True)
class Predicate:
    """Leaf: compare one field against a string value."""
    field: str
    operator: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class Condition:
    """Inner node: AND/OR over an ordered, non-empty list of children."""
    condition: str
    rules: tuple["RuleNode", ...]
    joins: tuple[tuple[str, ...], ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "condition": self.condition,
            "rules": [node.to_dict() for node in self.rules],
        }
        if self.joins:
            result["joins"] = [list(join) for join in self.joins]
        return result


RuleNode = Union[Condition, Predicate]


@dataclass(frozen=True)
class RawRules:
    """Pre-encoded rules that bypass the structured tree."""
    text: str


RuleSource = Union[Condition, RawRules]


# --- Structured form (desired document) ---

def parse_tree(data: Any, path: str = "rules") -> Condition:
    """Build a tree from the nested mapping form of a desired document.

    Raises:
        MalformedRuleTree: if the mapping does not describe a valid tree
    """
    node = _parse_node(data, path, strict_predicates=False)
    if not isinstance(node, Condition):
        raise MalformedRuleTree(
            f"Root of {path} must be a condition, not a predicate",
            attributes=(path,),
        )
    return node


def _parse_node(data: Any, path: str, strict_predicates: bool) -> RuleNode:
    if not isinstance(data, Mapping):
        raise MalformedRuleTree(
            f"Rule node at {path} must be an object, got {type(data).__name__}",
            attributes=(path,),
        )

    if "condition" in data or "rules" in data:
        return _parse_condition(data, path, strict_predicates)
    return _parse_predicate(data, path, strict_predicates)


def _parse_condition(data: Mapping, path: str, strict_predicates: bool) -> Condition:
    condition = data.get("condition")
    if condition not in CONDITIONS:
        raise MalformedRuleTree(
            f"Invalid condition {condition!r} at {path}: must be AND or OR",
            attributes=(path,),
        )

    children = data.get("rules")
    if not isinstance(children, list) or not children:
        raise MalformedRuleTree(
            f"Condition at {path} must have at least one rule",
            attributes=(path,),
        )

    joins_data = data.get("joins") or []
    if not isinstance(joins_data, list):
        raise MalformedRuleTree(f"joins at {path} must be a list", attributes=(path,))
    joins = []
    for i, join in enumerate(joins_data):
        if not isinstance(join, list) or not all(isinstance(j, str) for j in join):
            raise MalformedRuleTree(
                f"join {i} at {path} must be a list of strings",
                attributes=(path,),
            )
        joins.append(tuple(join))

    return Condition(
        condition=condition,
        rules=tuple(
            _parse_node(child, f"{path}.rules[{i}]", strict_predicates)
            for i, child in enumerate(children)
        ),
        joins=tuple(joins),
    )


def _parse_predicate(data: Mapping, path: str, strict_predicates: bool) -> Predicate:
    field_name = data.get("field") or data.get("id")
    operator = data.get("operator")
    value = data.get("value")

    if not isinstance(field_name, str) or not field_name:
        raise MalformedRuleTree(f"Predicate at {path} has no field", attributes=(path,))
    if not isinstance(operator, str) or not operator:
        raise MalformedRuleTree(f"Predicate at {path} has no operator", attributes=(path,))
    if value is None:
        value = ""

    if strict_predicates:
        input_kind = data.get("input", PREDICATE_INPUT)
        value_type = data.get("type", PREDICATE_TYPE)
        if input_kind != PREDICATE_INPUT or value_type != PREDICATE_TYPE:
            raise UnsupportedRuleTree(
                f"Predicate at {path} uses input={input_kind!r} type={value_type!r}; "
                f"only input='text' type='string' is supported, use rules_json instead",
                attributes=(path,),
            )
        if not isinstance(value, str):
            raise UnsupportedRuleTree(
                f"Predicate at {path} has a non-string value; use rules_json instead",
                attributes=(path,),
            )

    return Predicate(field=field_name, operator=operator, value=str(value))


# --- Canonical encoding ---

def _encode_node(node: RuleNode) -> dict[str, Any]:
    if isinstance(node, Predicate):
        return {
            "id": node.field,
            "field": node.field,
            "type": PREDICATE_TYPE,
            "input": PREDICATE_INPUT,
            "operator": node.operator,
            "value": node.value,
        }

    encoded: dict[str, Any] = {
        "condition": node.condition,
        "rules": [_encode_node(child) for child in node.rules],
    }
    if node.joins:
        encoded["joins"] = [list(join) for join in node.joins]
    return encoded


def encode(tree: Condition) -> str:
    """Encode a tree to its canonical JSON string."""
    document = _encode_node(tree)
    document["valid"] = True
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False)


def decode(text: str) -> Condition:
    """Decode a canonical (or LibreNMS-produced) rules string.

    Raises:
        MalformedRuleTree: if the text is not valid encoded-tree syntax
        UnsupportedRuleTree: if a predicate is not a text/string predicate
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedRuleTree(f"Rules are not valid JSON: {e}", attributes=("rules",)) from e

    node = _parse_node(data, "rules", strict_predicates=True)
    if not isinstance(node, Condition):
        raise MalformedRuleTree("Root of rules must be a condition", attributes=("rules",))
    return node


def normalize_json(text: str, attribute: str = "rules") -> str:
    """Normalise a JSON string for semantic comparison.

    Object keys are sorted; list order is preserved.
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedRuleTree(
            f"{attribute} is not valid JSON: {e}", attributes=(attribute,)
        ) from e
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def rule_source(fields: Mapping[str, Any]) -> Optional[RuleSource]:
    """Return the single rule representation declared in a document.

    Raises:
        ConflictingRuleRepresentation: if both ``rules`` and ``rules_json``
            are present
    """
    structured = fields.get("rules")
    raw = fields.get("rules_json")

    if not is_unset(structured) and not is_unset(raw):
        raise ConflictingRuleRepresentation(
            "Specify either rules or rules_json, not both",
            attributes=("rules", "rules_json"),
        )
    if not is_unset(structured):
        if isinstance(structured, Condition):
            return structured
        return parse_tree(structured)
    if not is_unset(raw):
        normalize_json(raw, "rules_json")
        return RawRules(text=raw)
    return None


def encode_source(source: RuleSource) -> str:
    """Encode whichever representation is active to the string sent remotely."""
    if isinstance(source, RawRules):
        return normalize_json(source.text, "rules_json")
    return encode(source)

"""Reconcile Engine - Declarative lifecycle management of LibreNMS entities.

The Reconcile Engine converges LibreNMS towards desired documents:
- Send desired state, not individual API calls
- Minimal partial updates, no call at all when nothing changed
- Mutually exclusive variants resolved into one flat remote shape
- Identity recovery when the create response is incomplete

Usage:
    from librenms_reconciler.reconcile import ReconcileEngine

    engine = ReconcileEngine(client)
    state = await engine.create("devicegroup", {
        "name": "core",
        "type": "dynamic",
        "rules": {
            "condition": "AND",
            "rules": [
                {"field": "devices.hostname", "operator": "begins_with", "value": "core-"}
            ],
        },
    })
    print(engine.preview(state, {**state.fields, "description": "Core switches"}))
"""

from .errors import (
    ReconcileError,
    ConfigurationError,
    MultipleVariantsSet,
    NoVariantSet,
    ConflictingRuleRepresentation,
    MalformedRuleTree,
    UnsupportedRuleTree,
    InvalidImportKey,
    InvalidAttributeValue,
    ReplacementRequired,
    ProtocolError,
    AmbiguousCreateMatch,
    IdentifierNotFound,
    IdentifierParseError,
    UnexpectedRecordCount,
    RemoteCallError,
)
from .schema import (
    ABSENT,
    EntityKind,
    EntityState,
    FieldChange,
    FieldPolicy,
    UpdateMode,
    UpdatePlan,
    is_unset,
)
from .rules import Condition, Predicate, RawRules, decode, encode, parse_tree, rule_source
from .variants import VariantCluster, VariantGroup, ResolvedVariant, resolve
from .planner import plan, summarize_plan
from .identity import IDENTIFIER_PATTERN, extract_identifier, match_unique
from .refresh import FieldMapping, RefreshSpec, refresh, apply_overlay
from .importer import resolve_import_key
from .engine import ReconcileEngine

__all__ = [
    # Main engine
    "ReconcileEngine",
    # Errors
    "ReconcileError",
    "ConfigurationError",
    "MultipleVariantsSet",
    "NoVariantSet",
    "ConflictingRuleRepresentation",
    "MalformedRuleTree",
    "UnsupportedRuleTree",
    "InvalidImportKey",
    "InvalidAttributeValue",
    "ReplacementRequired",
    "ProtocolError",
    "AmbiguousCreateMatch",
    "IdentifierNotFound",
    "IdentifierParseError",
    "UnexpectedRecordCount",
    "RemoteCallError",
    # Schema classes
    "ABSENT",
    "EntityKind",
    "EntityState",
    "FieldChange",
    "FieldPolicy",
    "UpdateMode",
    "UpdatePlan",
    "is_unset",
    # Components (for advanced use)
    "Condition",
    "Predicate",
    "RawRules",
    "decode",
    "encode",
    "parse_tree",
    "rule_source",
    "VariantCluster",
    "VariantGroup",
    "ResolvedVariant",
    "resolve",
    "plan",
    "summarize_plan",
    "IDENTIFIER_PATTERN",
    "extract_identifier",
    "match_unique",
    "FieldMapping",
    "RefreshSpec",
    "refresh",
    "apply_overlay",
    "resolve_import_key",
]

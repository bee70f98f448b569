"""Error taxonomy for reconciliation.

Three families:
- ConfigurationError: the desired document is wrong. Raised before any
  remote call and never retried.
- ProtocolError: the remote entity may already exist but its identity or
  record could not be confirmed. The caller owns any cleanup.
- RemoteCallError: the collaborator failed; the original error is chained.
"""
from typing import Iterable, Optional


class ReconcileError(Exception):
    """Base class for all reconciliation errors.

    Carries the entity kind, the lifecycle operation and the attribute(s)
    that triggered the failure so the message is actionable on its own.
    """

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        operation: Optional[str] = None,
        attributes: Iterable[str] = (),
    ):
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.operation = operation
        self.attributes = tuple(attributes)

    def bind(self, entity: str, operation: str) -> "ReconcileError":
        """Attach entity/operation context if not already present."""
        if self.entity is None:
            self.entity = entity
        if self.operation is None:
            self.operation = operation
        return self

    def __str__(self) -> str:
        parts = []
        if self.entity:
            parts.append(self.entity)
        if self.operation:
            parts.append(self.operation)
        prefix = f"[{' '.join(parts)}] " if parts else ""
        suffix = ""
        if self.attributes:
            suffix = f" (attributes: {', '.join(self.attributes)})"
        return f"{prefix}{self.message}{suffix}"


# --- Configuration errors ---

class ConfigurationError(ReconcileError):
    """The desired document cannot be reconciled as written."""


class MultipleVariantsSet(ConfigurationError):
    """More than one mutually exclusive cluster is populated."""


class NoVariantSet(ConfigurationError):
    """The discriminator requires a cluster that is not populated."""


class ConflictingRuleRepresentation(ConfigurationError):
    """Both a structured rule tree and a raw rule override were supplied."""


class MalformedRuleTree(ConfigurationError):
    """A rule tree string or mapping is not valid encoded-tree syntax."""


class UnsupportedRuleTree(MalformedRuleTree):
    """Valid rule JSON that the structured tree cannot represent."""


class InvalidImportKey(ConfigurationError):
    """An import key is not a valid entity identifier."""


class InvalidAttributeValue(ConfigurationError):
    """An attribute value is outside its allowed set or range."""


class ReplacementRequired(ConfigurationError):
    """An immutable attribute changed; the entity must be recreated."""


# --- Protocol errors ---

class ProtocolError(ReconcileError):
    """The remote system answered in a way the protocol cannot confirm.

    When raised during Create the entity may exist remotely even though
    the operation failed.
    """

    created_but_unconfirmed = False


class AmbiguousCreateMatch(ProtocolError):
    """Zero or several records match the submitted unique key."""

    created_but_unconfirmed = True


class IdentifierNotFound(ProtocolError):
    """The create response carries no recognisable identifier."""

    created_but_unconfirmed = True


class IdentifierParseError(ProtocolError):
    """The identifier token was found but is not an integer."""

    created_but_unconfirmed = True


class UnexpectedRecordCount(ProtocolError):
    """A fetch-by-identifier returned other than exactly one record."""

    def __init__(self, message: str, count: int, **kwargs):
        super().__init__(message, **kwargs)
        self.count = count


# --- Remote call errors ---

class RemoteCallError(ReconcileError):
    """The collaborator call failed. The cause is chained via __cause__."""

"""Identity recovery after a create call.

LibreNMS create responses do not always carry the new identifier. Three
strategies are supported, chosen per entity type:

- ResponseIdentifier: the identifier is a field of the structured response.
- ListAndMatch: list the collection and match the unique record whose
  immutable key equals the submitted value.
- MessageToken: parse ``(#<id>)`` from the end of the status message. Used
  where the remote system allows duplicate-looking entities.
"""
import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from .errors import AmbiguousCreateMatch, IdentifierNotFound, IdentifierParseError

if TYPE_CHECKING:
    from ..resources.base import ResourceHandler

logger = logging.getLogger(__name__)

# "Service ping has been added to device 2 (#5)" -> "5"
IDENTIFIER_PATTERN = re.compile(r"\(#([^()]+)\)\s*$")


def extract_identifier(message: Any) -> int:
    """
    Extract the identifier token from a creation status message.

    Raises:
        IdentifierNotFound: if the message does not end with ``(#<token>)``
        IdentifierParseError: if the token is not a decimal integer
    """
    if not isinstance(message, str):
        raise IdentifierNotFound(
            f"Create response has no status message to parse: {message!r}"
        )

    match = IDENTIFIER_PATTERN.search(message)
    if not match:
        raise IdentifierNotFound(
            f"Could not find an identifier in message: `{message}`"
        )

    token = match.group(1).strip()
    if not token.isascii() or not token.isdigit():
        raise IdentifierParseError(
            f"Identifier token {token!r} in message `{message}` is not an integer"
        )
    return int(token)


def match_unique(
    records: Iterable[Mapping[str, Any]],
    key: str,
    value: Any,
) -> Mapping[str, Any]:
    """
    Find the single record whose ``key`` equals ``value``.

    Raises:
        AmbiguousCreateMatch: if zero or more than one record matches
    """
    matches = [r for r in records if r.get(key) == value]

    if len(matches) != 1:
        raise AmbiguousCreateMatch(
            f"Expected exactly one record with {key}={value!r} after create, "
            f"found {len(matches)}",
            attributes=(key,),
        )
    return matches[0]


def record_identifier(record: Mapping[str, Any], id_key: str) -> int:
    """Read and validate the integer identifier of a record."""
    raw = record.get(id_key)
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise IdentifierParseError(
            f"Record field {id_key}={raw!r} is not an integer identifier"
        ) from e


class IdentityStrategy(ABC):
    """Determines the identifier of an entity that was just created."""

    # Handler methods the strategy calls besides submit_create
    handler_hooks: tuple[str, ...] = ()

    @abstractmethod
    async def recover(
        self,
        handler: "ResourceHandler",
        payload: Mapping[str, Any],
        response: Any,
    ) -> int:
        """Return the new identifier or raise a ProtocolError."""


class ResponseIdentifier(IdentityStrategy):
    """Identifier carried in the structured create response."""

    def __init__(self, key: str = "id"):
        self.key = key

    async def recover(self, handler, payload, response) -> int:
        if not isinstance(response, Mapping) or response.get(self.key) is None:
            raise IdentifierNotFound(
                f"Create response has no {self.key!r} field"
            )
        return record_identifier(response, self.key)


class ListAndMatch(IdentityStrategy):
    """List candidates and match the unique one by an immutable key.

    Args:
        payload_key: Key of the submitted value in the create payload
        record_key: Key of the same value in listed records
    """

    handler_hooks = ("list_candidates",)

    def __init__(self, payload_key: str = "name", record_key: str = "name"):
        self.payload_key = payload_key
        self.record_key = record_key

    async def recover(self, handler, payload, response) -> int:
        value = payload.get(self.payload_key)
        records = await handler.list_candidates(payload)
        logger.debug(
            f"Matching {self.record_key}={value!r} among {len(records)} "
            f"{handler.kind.value} records"
        )
        record = match_unique(records, self.record_key, value)
        return record_identifier(record, handler.id_key)


class MessageToken(IdentityStrategy):
    """Identifier embedded in the free-text status message."""

    def __init__(self, message_key: str = "message"):
        self.message_key = message_key

    async def recover(self, handler, payload, response) -> int:
        message = response.get(self.message_key) if isinstance(response, Mapping) else None
        return extract_identifier(message)

"""Errors raised by the record services and the telemetry store."""

import re

_ENTITY_ID = re.compile(r"^[0-9a-f]{24}$")


class InvalidEntityId(ValueError):
    """The id cannot name a record (not 24 hex characters)."""

    def __init__(self, entity_id: str):
        super().__init__(f"Invalid entity id: {entity_id!r}")
        self.entity_id = entity_id


class EntityNotFound(LookupError):
    """No record exists for a well-formed id."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


def parse_entity_id(entity_id: str) -> str:
    """Normalize an id to the storage key form or raise InvalidEntityId."""
    key = entity_id.strip().lower()
    if not _ENTITY_ID.match(key):
        raise InvalidEntityId(entity_id)
    return key

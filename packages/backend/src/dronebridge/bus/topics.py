"""Topic layout and message classes.

Producers publish to `<namespace>/<entity-id>/<class>`. The class segment is
resolved once, here, into a MessageClass; everything downstream branches on
the enum rather than on raw strings.
"""

import enum
from dataclasses import dataclass


class MessageClass(str, enum.Enum):
    LOCATION = "location"
    STATE = "state"


class BroadcastGroup(str, enum.Enum):
    """Fan-out groups, one per message class."""

    LOCATION = "location"
    FLIGHT = "flight"


GROUP_FOR_CLASS = {
    MessageClass.LOCATION: BroadcastGroup.LOCATION,
    MessageClass.STATE: BroadcastGroup.FLIGHT,
}


class MalformedTopic(ValueError):
    """Topic does not have exactly three non-empty segments."""


class UnknownMessageClass(ValueError):
    """Topic is well-formed but names a class we do not handle."""

    def __init__(self, topic: str, name: str):
        super().__init__(f"Unknown message class {name!r} in topic {topic!r}")
        self.name = name


@dataclass(frozen=True)
class Topic:
    namespace: str
    entity_id: str
    message_class: MessageClass

    def __str__(self) -> str:
        return f"{self.namespace}/{self.entity_id}/{self.message_class.value}"


def parse_topic(topic: str) -> Topic:
    """Split a topic into namespace, entity id and message class.

    Raises MalformedTopic for the wrong number of segments (or an empty
    one) and UnknownMessageClass for a class outside MessageClass.
    """
    parts = topic.split("/")
    if len(parts) != 3 or not all(parts):
        raise MalformedTopic(f"Invalid topic format: {topic!r}")

    namespace, entity_id, name = parts
    try:
        message_class = MessageClass(name)
    except ValueError:
        raise UnknownMessageClass(topic, name) from None
    return Topic(namespace=namespace, entity_id=entity_id, message_class=message_class)


def subscription_filters(namespace: str) -> list[str]:
    """Wildcard filters matching any entity, one per message class."""
    return [f"{namespace}/+/{mc.value}" for mc in MessageClass]

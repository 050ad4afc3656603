"""Analytics message model and factory helpers."""

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class MessageType(Enum):
    IDENTIFY = "identify"
    TRACK = "track"
    SCREEN = "screen"
    PAGE = "page"
    GROUP = "group"
    ALIAS = "alias"


# Type-specific field each message type must carry.
_REQUIRED_FIELDS = {
    MessageType.TRACK: "event",
    MessageType.SCREEN: "name",
    MessageType.PAGE: "name",
    MessageType.GROUP: "group_id",
    MessageType.ALIAS: "previous_id",
}

_WIRE_KEYS = {
    "message_id": "messageId",
    "user_id": "userId",
    "anonymous_id": "anonymousId",
    "group_id": "groupId",
    "previous_id": "previousId",
}

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _freeze(value: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    if value is None:
        return _EMPTY
    if isinstance(value, MappingProxyType):
        return value
    return MappingProxyType(dict(value))


@dataclass(frozen=True)
class Message:
    """One analytics event. Instances are never mutated; use
    ``with_changes`` to derive a modified copy."""

    type: MessageType
    user_id: Optional[str] = None
    anonymous_id: Optional[str] = None
    event: Optional[str] = None
    name: Optional[str] = None
    group_id: Optional[str] = None
    previous_id: Optional[str] = None
    properties: Mapping[str, Any] = field(default_factory=dict)
    context: Mapping[str, Any] = field(default_factory=dict)
    integrations: Mapping[str, Any] = field(default_factory=dict)
    message_id: str = field(default_factory=_new_id)
    timestamp: str = field(default_factory=_now)

    def __post_init__(self):
        if not isinstance(self.type, MessageType):
            object.__setattr__(self, "type", MessageType(self.type))
        if not self.user_id and not self.anonymous_id:
            raise ValueError("Either user_id or anonymous_id must be provided.")
        required = _REQUIRED_FIELDS.get(self.type)
        if required and not getattr(self, required):
            raise ValueError(f"{self.type.value} messages require {required}.")
        for name in ("properties", "context", "integrations"):
            object.__setattr__(self, name, _freeze(getattr(self, name)))

    def with_changes(self, **changes) -> "Message":
        """Return a copy of this message with *changes* applied."""
        return dataclasses.replace(self, **changes)


def identify(user_id=None, traits=None, anonymous_id=None, **kwargs) -> Message:
    return Message(
        MessageType.IDENTIFY, user_id=user_id, anonymous_id=anonymous_id,
        properties=traits or {}, **kwargs,
    )


def track(user_id=None, event=None, properties=None, anonymous_id=None, **kwargs) -> Message:
    return Message(
        MessageType.TRACK, user_id=user_id, anonymous_id=anonymous_id,
        event=event, properties=properties or {}, **kwargs,
    )


def screen(user_id=None, name=None, properties=None, anonymous_id=None, **kwargs) -> Message:
    return Message(
        MessageType.SCREEN, user_id=user_id, anonymous_id=anonymous_id,
        name=name, properties=properties or {}, **kwargs,
    )


def page(user_id=None, name=None, properties=None, anonymous_id=None, **kwargs) -> Message:
    return Message(
        MessageType.PAGE, user_id=user_id, anonymous_id=anonymous_id,
        name=name, properties=properties or {}, **kwargs,
    )


def group(user_id=None, group_id=None, traits=None, anonymous_id=None, **kwargs) -> Message:
    return Message(
        MessageType.GROUP, user_id=user_id, anonymous_id=anonymous_id,
        group_id=group_id, properties=traits or {}, **kwargs,
    )


def alias(user_id=None, previous_id=None, **kwargs) -> Message:
    return Message(MessageType.ALIAS, user_id=user_id, previous_id=previous_id, **kwargs)


def message_to_dict(message: Message) -> dict:
    """Convert a Message to a JSON-ready dict using wire key names.

    Empty optional fields are omitted. Identify and group messages carry
    their property bag under ``traits``.
    """
    result: dict[str, Any] = {"type": message.type.value}
    for f in dataclasses.fields(message):
        if f.name == "type":
            continue
        value = getattr(message, f.name)
        if value is None:
            continue
        if isinstance(value, Mapping):
            if not value:
                continue
            value = dict(value)
        key = _WIRE_KEYS.get(f.name, f.name)
        if f.name == "properties" and message.type in (MessageType.IDENTIFY, MessageType.GROUP):
            key = "traits"
        result[key] = value
    return result

"""
Inbound Message Contracts

Provider-agnostic representation of messages received by a session.
Raw transport messages are parsed once into an InboundMessage whose
content is one variant of a small tagged union.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


class MessageType(str, Enum):
    """Types of WhatsApp message content."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    REACTION = "reaction"
    LOCATION = "location"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TextContent:
    text: str
    type: MessageType = MessageType.TEXT


@dataclass(frozen=True)
class MediaContent:
    type: MessageType
    mime_type: str | None = None
    caption: str | None = None
    url: str | None = None
    file_name: str | None = None


@dataclass(frozen=True)
class ReactionContent:
    emoji: str
    target_message_id: str | None = None
    type: MessageType = MessageType.REACTION


@dataclass(frozen=True)
class LocationContent:
    latitude: float
    longitude: float
    name: str | None = None
    type: MessageType = MessageType.LOCATION


@dataclass(frozen=True)
class UnknownContent:
    raw_type: str | None = None
    type: MessageType = MessageType.UNKNOWN


MessageContent = Union[TextContent, MediaContent, ReactionContent, LocationContent, UnknownContent]

# Raw message keys that carry media, mapped to our content type
_MEDIA_KEYS = {
    "imageMessage": MessageType.IMAGE,
    "videoMessage": MessageType.VIDEO,
    "audioMessage": MessageType.AUDIO,
    "documentMessage": MessageType.DOCUMENT,
    "stickerMessage": MessageType.STICKER,
}


@dataclass(frozen=True)
class InboundMessage:
    """
    Parsed inbound message.

    Attributes:
        message_id: Transport message id
        chat_id: Chat the message belongs to (remote jid)
        sender: Sender jid (participant in groups, chat id otherwise)
        timestamp: When the message was sent (UTC)
        content: Parsed content variant
        push_name: Sender's WhatsApp profile name
        from_me: Whether the session itself sent the message
        raw_payload: Original transport payload
    """

    message_id: str
    chat_id: str
    sender: str
    timestamp: datetime
    content: MessageContent
    push_name: str | None = None
    from_me: bool = False
    raw_payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def message_type(self) -> MessageType:
        return self.content.type

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        content = {
            key: (value.value if isinstance(value, Enum) else value)
            for key, value in self.content.__dict__.items()
        }
        return {
            "id": self.message_id,
            "chat_id": self.chat_id,
            "sender": self.sender,
            "timestamp": self.timestamp.isoformat(),
            "push_name": self.push_name,
            "from_me": self.from_me,
            "content": content,
        }


def parse_content(message: dict[str, Any] | None) -> MessageContent:
    """
    Parse the ``message`` node of a raw transport message.

    Args:
        message: Raw content node (may be None for protocol stubs)

    Returns:
        Exactly one content variant
    """
    if not message:
        return UnknownContent()

    if "conversation" in message:
        return TextContent(text=message["conversation"] or "")

    if "extendedTextMessage" in message:
        return TextContent(text=(message["extendedTextMessage"] or {}).get("text", ""))

    for key, media_type in _MEDIA_KEYS.items():
        if key in message:
            media = message[key] or {}
            return MediaContent(
                type=media_type,
                mime_type=media.get("mimetype"),
                caption=media.get("caption"),
                url=media.get("url"),
                file_name=media.get("fileName"),
            )

    if "reactionMessage" in message:
        reaction = message["reactionMessage"] or {}
        return ReactionContent(
            emoji=reaction.get("text", ""),
            target_message_id=(reaction.get("key") or {}).get("id"),
        )

    if "locationMessage" in message:
        location = message["locationMessage"] or {}
        return LocationContent(
            latitude=float(location.get("degreesLatitude", 0.0)),
            longitude=float(location.get("degreesLongitude", 0.0)),
            name=location.get("name"),
        )

    return UnknownContent(raw_type=next(iter(message), None))


def parse_timestamp(value: Any) -> datetime:
    """
    Convert a message timestamp to an aware UTC datetime.

    Accepts epoch seconds as int, float or numeric string, and the
    protobuf Long shape ``{"low": ..., "high": ...}``. Missing or
    unusable values fall back to the current time.
    """
    if isinstance(value, dict):
        try:
            value = (int(value.get("high", 0)) << 32) | (int(value.get("low", 0)) & 0xFFFFFFFF)
        except (TypeError, ValueError):
            value = None

    if value is None:
        return datetime.now(timezone.utc)

    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.now(timezone.utc)


def parse_inbound_message(raw: dict[str, Any]) -> InboundMessage:
    """
    Parse a raw transport message into an InboundMessage.

    Raises:
        ValueError: If the message has no key or remote jid
    """
    key = raw.get("key") or {}
    chat_id = key.get("remoteJid")
    if not chat_id:
        raise ValueError("Message has no remoteJid")

    return InboundMessage(
        message_id=key.get("id", ""),
        chat_id=chat_id,
        sender=key.get("participant") or chat_id,
        timestamp=parse_timestamp(raw.get("messageTimestamp")),
        content=parse_content(raw.get("message")),
        push_name=raw.get("pushName"),
        from_me=bool(key.get("fromMe", False)),
        raw_payload=raw,
    )

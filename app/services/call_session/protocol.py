"""
Carrier media stream protocol (Twilio Media Streams).

Inbound events: connected, start, media, mark, dtmf, stop.
Outbound events: media (base64 mu-law 8kHz) and mark.
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from app.services.speech.audio import chunk_audio

logger = logging.getLogger(__name__)


class ProtocolError(ValueError):
    """Raised for messages that cannot be parsed."""


class OutboundChannelClosed(Exception):
    """Raised when audio can no longer be written to the carrier."""


class StreamEventType(str, Enum):
    """Media stream event types."""

    CONNECTED = "connected"
    START = "start"
    MEDIA = "media"
    MARK = "mark"
    DTMF = "dtmf"
    STOP = "stop"


@dataclass
class StartEvent:
    """Parsed start event."""

    stream_sid: str
    call_sid: str
    custom_parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MediaEvent:
    """Parsed media event (payload still base64)."""

    stream_sid: str
    payload: str
    track: str = "inbound"


@dataclass
class StreamEvent:
    """Any parsed event."""

    type: StreamEventType
    stream_sid: str = ""
    start: Optional[StartEvent] = None
    media: Optional[MediaEvent] = None
    mark_name: Optional[str] = None


def parse_message(raw_message) -> StreamEvent:
    """
    Parse a raw media stream message.

    Raises:
        ProtocolError: If the message is not valid JSON or not a known event
    """
    try:
        message = json.loads(raw_message)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Invalid JSON: {e}")
    if not isinstance(message, dict):
        raise ProtocolError("Message is not a JSON object")

    try:
        event_type = StreamEventType(message.get("event", ""))
    except ValueError:
        raise ProtocolError(f"Unknown event type: {message.get('event')!r}")

    stream_sid = _optional_str(message, "streamSid")
    event = StreamEvent(type=event_type, stream_sid=stream_sid)

    if event_type == StreamEventType.START:
        start = message.get("start")
        if not isinstance(start, dict):
            raise ProtocolError("start event without start block")
        custom_parameters = start.get("customParameters") or {}
        if not isinstance(custom_parameters, dict):
            raise ProtocolError("start event customParameters is not an object")
        event.stream_sid = stream_sid or _optional_str(start, "streamSid")
        event.start = StartEvent(
            stream_sid=event.stream_sid,
            call_sid=_optional_str(start, "callSid"),
            custom_parameters=custom_parameters,
        )
    elif event_type == StreamEventType.MEDIA:
        media = message.get("media")
        if not isinstance(media, dict) or not isinstance(media.get("payload"), str):
            raise ProtocolError("media event without payload")
        event.media = MediaEvent(
            stream_sid=stream_sid,
            payload=media["payload"],
            track=_optional_str(media, "track") or "inbound",
        )
    elif event_type == StreamEventType.MARK:
        mark = message.get("mark") or {}
        if not isinstance(mark, dict):
            raise ProtocolError("mark event mark is not an object")
        event.mark_name = _optional_str(mark, "name") or None

    return event


def _optional_str(block: Dict[str, Any], key: str) -> str:
    """Read an optional string field; absent or null reads as ""."""
    value = block.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProtocolError(f"{key} is not a string")
    return value


def decode_payload(payload: str) -> bytes:
    """
    Decode a base64 media payload.

    Raises:
        ProtocolError: If the payload is not valid base64
    """
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolError(f"Invalid media payload: {e}")


def media_message(stream_sid: str, audio: bytes) -> str:
    """Build an outbound media message."""
    return json.dumps({
        "event": "media",
        "streamSid": stream_sid,
        "media": {"payload": base64.b64encode(audio).decode("ascii")},
    })


def mark_message(stream_sid: str, name: str) -> str:
    """Build an outbound mark message."""
    return json.dumps({
        "event": "mark",
        "streamSid": stream_sid,
        "mark": {"name": name},
    })


class OutboundChannel:
    """Writes synthesized audio back onto the carrier connection."""

    def __init__(self, send_text: Callable[[str], Awaitable[None]]):
        self._send_text = send_text
        self.stream_sid = ""
        self.closed = False

    def close(self) -> None:
        self.closed = True

    async def _send(self, message: str) -> None:
        if self.closed:
            raise OutboundChannelClosed("Outbound channel already closed")
        try:
            await self._send_text(message)
        except Exception as e:
            # Socket gone; nothing more can be written to this call
            self.closed = True
            raise OutboundChannelClosed(f"Send failed: {type(e).__name__}: {e}") from e

    async def send_audio(self, audio: bytes, mark_name: Optional[str] = None) -> int:
        """
        Stream audio to the carrier as frames, then an optional mark.

        Returns:
            Number of audio bytes written

        Raises:
            OutboundChannelClosed: If the channel closes before all frames are sent
        """
        sent = 0
        for frame in chunk_audio(audio):
            await self._send(media_message(self.stream_sid, frame))
            sent += len(frame)
        if mark_name:
            await self._send(mark_message(self.stream_sid, mark_name))
        return sent

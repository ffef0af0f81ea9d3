"""Call session models."""
import uuid
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Deque, Dict, List, Optional

from app.services.agent.context import ConversationContext
from app.services.call_session.protocol import OutboundChannel


class TurnState(str, Enum):
    """Turn-taking state of a call."""

    LISTENING = "listening"  # Accepting buffer handoffs
    THINKING = "thinking"  # Transcription, generation and synthesis running
    SPEAKING = "speaking"  # Reply audio playing to the caller

    def __str__(self) -> str:
        return self.value


class CallSession:
    """State of one live carrier connection."""

    def __init__(self, outbound: OutboundChannel, history_turns: int = 6):
        self.connection_id = uuid.uuid4().hex
        self.outbound = outbound
        self.stream_sid: Optional[str] = None
        self.call_sid: Optional[str] = None
        self.routing_parameters: Dict[str, str] = {}
        self.context: Optional[ConversationContext] = None  # set on stream start
        self.turn_state = TurnState.LISTENING
        self.audio_buffer = bytearray()
        self.outbound_in_flight = False
        self.turn_count = 0
        # user/assistant chat messages, two per completed turn
        self.history: Deque[Dict[str, str]] = deque(maxlen=max(history_turns, 0) * 2)
        self.buffers_accepted = 0
        self.buffers_discarded = 0
        self.started_at: Optional[datetime] = None
        self.stopped_at: Optional[datetime] = None
        self.closed = False

    @property
    def label(self) -> str:
        """Identifier used in log lines."""
        return self.call_sid or self.stream_sid or self.connection_id

    def get_history(self) -> List[Dict[str, str]]:
        return list(self.history)

    def add_exchange(self, user_text: str, reply: str) -> None:
        """Remember one caller utterance and the reply to it."""
        self.history.append({"role": "user", "content": user_text})
        self.history.append({"role": "assistant", "content": reply})

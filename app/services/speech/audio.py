"""Wire-format helpers for carrier audio.

The carrier streams 8-bit mu-law, 8kHz, mono, with no container. One
sample is one byte, so byte counts convert directly to durations.
"""
from typing import Iterator

MULAW_SAMPLE_RATE = 8000
MULAW_BYTES_PER_SECOND = MULAW_SAMPLE_RATE  # 1 byte per sample, 1 channel
FRAME_DURATION_MS = 20
FRAME_SIZE = MULAW_BYTES_PER_SECOND * FRAME_DURATION_MS // 1000  # 160 bytes


def bytes_for_duration(duration_ms: int) -> int:
    """Number of mu-law bytes that hold ``duration_ms`` of audio."""
    return MULAW_BYTES_PER_SECOND * duration_ms // 1000


def audio_duration_seconds(num_bytes: int) -> float:
    """Playback duration of ``num_bytes`` of mu-law audio."""
    return num_bytes / MULAW_BYTES_PER_SECOND


def playback_duration_seconds(num_bytes: int, padding_seconds: float = 0.0) -> float:
    """
    Time to wait after sending ``num_bytes`` before listening again.

    Never less than the audio's own duration, so the caller is not
    processed while the assistant's reply is still playing.
    """
    return audio_duration_seconds(num_bytes) + max(padding_seconds, 0.0)


def chunk_audio(audio: bytes, frame_size: int = FRAME_SIZE) -> Iterator[bytes]:
    """Split audio into carrier-sized frames (the last one may be short)."""
    for start in range(0, len(audio), frame_size):
        yield audio[start:start + frame_size]

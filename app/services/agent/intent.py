"""Keyword-based intent and sentiment detection."""
import re
from enum import Enum
from typing import Iterable, List

from pydantic import BaseModel

from app.services.agent.constants import (
    AFFIRMATIVE_CUES,
    CANCEL_INDICATORS,
    CONFIRM_INDICATORS,
    INTENT_CONFIDENCE,
    NEGATIVE_CUES,
    NEGATIVE_PHRASES,
    NEGATIVE_WORDS,
    POSITIVE_WORDS,
    RECOVERY_INDICATORS,
    RESCHEDULE_INDICATORS,
)


class Intent(str, Enum):
    """What the caller wants done with the record the call is about."""

    CONFIRM = "confirm"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    UNCLEAR = "unclear"

    def __str__(self) -> str:
        return self.value


class Sentiment(str, Enum):
    """Coarse caller sentiment."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"

    def __str__(self) -> str:
        return self.value


class IntentResult(BaseModel):
    """Detected intent."""

    intent: Intent
    confidence: float


class SentimentResult(BaseModel):
    """Detected sentiment."""

    sentiment: Sentiment
    score: float


def contains_keyword(text: str, keywords: Iterable[str]) -> bool:
    """True if any keyword or phrase appears in ``text`` as whole words."""
    lowered = text.lower()
    for keyword in keywords:
        if re.search(rf"\b{re.escape(keyword)}\b", lowered):
            return True
    return False


def count_keywords(text: str, keywords: Iterable[str]) -> int:
    """Number of distinct keywords present in ``text``."""
    return sum(1 for keyword in keywords if contains_keyword(text, [keyword]))


def detect_intent(transcript: str) -> IntentResult:
    """Detect the caller's intent from an utterance."""
    if contains_keyword(transcript, CONFIRM_INDICATORS):
        intent = Intent.CONFIRM
    elif contains_keyword(transcript, RESCHEDULE_INDICATORS):
        intent = Intent.RESCHEDULE
    elif contains_keyword(transcript, CANCEL_INDICATORS):
        intent = Intent.CANCEL
    else:
        intent = Intent.UNCLEAR
    return IntentResult(intent=intent, confidence=INTENT_CONFIDENCE[intent.value])


def analyze_sentiment(transcript: str) -> SentimentResult:
    """Score an utterance as positive, negative or neutral."""
    positive = count_keywords(transcript, POSITIVE_WORDS)
    negative = count_keywords(transcript, NEGATIVE_WORDS)

    if positive > negative:
        return SentimentResult(sentiment=Sentiment.POSITIVE, score=0.7)
    if negative > positive:
        return SentimentResult(sentiment=Sentiment.NEGATIVE, score=-0.7)
    return SentimentResult(sentiment=Sentiment.NEUTRAL, score=0.0)


def mentions_recovery(transcript: str) -> bool:
    """True if the caller says they are feeling better."""
    return contains_keyword(transcript, RECOVERY_INDICATORS) and not contains_keyword(
        transcript, NEGATIVE_PHRASES
    )


def classify_cue(text: str) -> str:
    """
    Reduce an utterance to the cue used by the fallback reply table.

    Returns:
        "affirmative", "negative" or "default"
    """
    if contains_keyword(text, NEGATIVE_PHRASES):
        return "negative"
    if contains_keyword(text, AFFIRMATIVE_CUES):
        return "affirmative"
    if contains_keyword(text, NEGATIVE_CUES):
        return "negative"
    return "default"


def derive_outcome(caller_texts: List[str], context_kind: str = "") -> tuple:
    """
    Summarize a finished call from everything the caller said.

    Returns:
        ``(outcome, SentimentResult)``
    """
    full_text = " ".join(caller_texts)
    if not full_text.strip():
        return "no-action", SentimentResult(sentiment=Sentiment.NEUTRAL, score=0.0)

    sentiment = analyze_sentiment(full_text)
    intent = detect_intent(full_text)

    if context_kind == "appointment":
        if intent.intent == Intent.CONFIRM:
            return "appointment-confirmed", sentiment
        if intent.intent == Intent.RESCHEDULE:
            return "appointment-rescheduled", sentiment
        if intent.intent == Intent.CANCEL and contains_keyword(full_text, ["cancel"]):
            return "appointment-cancelled", sentiment
        return "no-action", sentiment

    if context_kind in ("follow_up", "patient"):
        if sentiment.sentiment == Sentiment.NEGATIVE:
            return "callback-requested", sentiment
        return "follow-up-completed", sentiment

    return "no-action", sentiment

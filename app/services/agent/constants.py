"""Keyword tables for intent, sentiment and fallback replies."""

# Intent keywords, checked in this order: confirm, reschedule, cancel
CONFIRM_INDICATORS = [
    "yes",
    "confirm",
    "okay",
]

RESCHEDULE_INDICATORS = [
    "reschedule",
    "change",
    "different time",
]

CANCEL_INDICATORS = [
    "cancel",
    "no",
]

INTENT_CONFIDENCE = {
    "confirm": 0.9,
    "reschedule": 0.9,
    "cancel": 0.8,
    "unclear": 0.5,
}

# Patient says they are recovering
RECOVERY_INDICATORS = [
    "better",
]

POSITIVE_WORDS = ["yes", "great", "good", "thank", "thanks", "perfect", "okay", "better"]
NEGATIVE_WORDS = ["no", "cancel", "problem", "issue", "cannot", "busy", "worse"]

# Lexical cues for the fallback reply table
NEGATIVE_PHRASES = [
    "not good",
    "not well",
    "not better",
    "worse",
]

AFFIRMATIVE_CUES = [
    "yes",
    "good",
    "better",
    "okay",
    "fine",
    "confirm",
    "sure",
]

NEGATIVE_CUES = [
    "no",
    "cancel",
    "reschedule",
]

FALLBACK_REPLIES = {
    "appointment": {
        "affirmative": (
            "Thank you! Your appointment is confirmed. We look forward to seeing you."
        ),
        "negative": (
            "I understand. Our staff will call you shortly to arrange a new time."
        ),
        "default": (
            "Thank you for speaking with me. If you have any questions about your "
            "appointment, please contact the clinic directly."
        ),
    },
    "follow_up": {
        "affirmative": (
            "That's wonderful to hear! Please continue taking your medications as "
            "prescribed. If you need anything else, feel free to call the clinic."
        ),
        "negative": (
            "I understand. I recommend you schedule a follow-up appointment with your "
            "doctor. Our staff will call you to arrange this."
        ),
        "default": (
            "Thank you for speaking with me. If you have any concerns, please don't "
            "hesitate to contact the clinic directly."
        ),
    },
}

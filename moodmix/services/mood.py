"""Keyword-based mood detection."""

from dataclasses import dataclass

# Checked in order; the first mood with a matching keyword wins.
MOOD_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("sad", ("sad", "depressed", "down", "crying", "heartbroken", "lonely", "upset", "blue", "melancholy")),
    ("happy", ("happy", "excited", "great", "awesome", "fantastic", "wonderful", "amazing", "cheerful", "joyful")),
    ("angry", ("angry", "mad", "furious", "pissed", "annoyed", "frustrated", "rage", "hate")),
    ("energetic", ("energetic", "pumped", "hyped", "workout", "exercise", "gym", "running", "motivated")),
)

DEFAULT_MOOD = "neutral"
DEFAULT_CONFIDENCE = 0.5
MATCH_CONFIDENCE = 0.8


@dataclass(frozen=True)
class MoodAnalysis:
    """Detected mood and how confident the heuristic is."""

    mood: str
    confidence: float

    @property
    def confidence_percent(self) -> int:
        return round(self.confidence * 100)


def detect_mood(message: str) -> MoodAnalysis:
    """Detect the dominant mood of a message by substring keyword matching."""
    text = message.lower()
    for mood, keywords in MOOD_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return MoodAnalysis(mood=mood, confidence=MATCH_CONFIDENCE)
    return MoodAnalysis(mood=DEFAULT_MOOD, confidence=DEFAULT_CONFIDENCE)

"""
Story classifier: maps story text to an (archetype, emotion tone) pair.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .client import LLMClient, LLMError
from .parsing import StructuredOutputError, parse_model_output
from ..config import MatchingConfig
from ..prompts import CLASSIFICATION_PROMPT

logger = logging.getLogger("stories.classifier")

ARCHETYPES = (
    "Hero",
    "Shadow",
    "Anima/Animus",
    "Self",
    "Persona",
    "Great Mother",
    "Wise Old Man",
    "Trickster",
    "Child",
)

EMOTION_TONES = (
    "joyful",
    "melancholic",
    "anxious",
    "peaceful",
    "angry",
    "hopeful",
    "fearful",
    "loving",
)


class Classification(BaseModel):
    archetype: str
    emotion_tone: str

    model_config = ConfigDict(frozen=True)


class _RawClassification(BaseModel):
    archetype: Optional[str] = None
    emotion_tone: Optional[str] = None


def _canonical(value: Optional[str], vocabulary: tuple) -> Optional[str]:
    if not value:
        return None
    wanted = value.strip().casefold()
    for label in vocabulary:
        if label.casefold() == wanted:
            return label
    return None


class Classifier:
    def __init__(self, llm: LLMClient, config: MatchingConfig):
        self._llm = llm
        self._config = config

    @property
    def default(self) -> Classification:
        return Classification(
            archetype=self._config.default_archetype,
            emotion_tone=self._config.default_emotion_tone,
        )

    async def classify(self, text: str) -> Classification:
        """
        Classify a story. Falls back to the configured default on any
        provider or parsing failure, and per field for unknown labels.
        """
        system_prompt = CLASSIFICATION_PROMPT.format(
            archetypes=", ".join(ARCHETYPES),
            tones=", ".join(EMOTION_TONES),
        )

        try:
            content = await self._llm.complete(
                text,
                system_prompt=system_prompt,
                temperature=0.3,
                json_mode=True,
            )
            raw = parse_model_output(content, _RawClassification)
        except (LLMError, StructuredOutputError) as exc:
            logger.warning("Classification failed, using default: %s", exc)
            return self.default

        default = self.default
        return Classification(
            archetype=_canonical(raw.archetype, ARCHETYPES) or default.archetype,
            emotion_tone=_canonical(raw.emotion_tone, EMOTION_TONES) or default.emotion_tone,
        )

"""
Rewrite / Translate Provider

Produces the anonymized rendition of a story that is delivered to another
user. A rendition is made in two steps, rewrite then translate:

1. ``rewrite`` paraphrases the story directly in the target language.
2. ``translate`` normalizes the result into the target language. It is
   fail-soft and returns its input on any failure, so a rewritten but
   untranslated text is acceptable output.

Rewrites are checked for verbatim copying of the source. A rewrite that
reproduces a run of ``verbatim_window`` consecutive source words is
re-requested, up to ``rewrite_attempts`` times, then treated as failed.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from .client import LLMClient, LLMError
from ..config import MatchingConfig
from ..prompts import REWRITE_PROMPT, TRANSLATION_PROMPT

logger = logging.getLogger("stories.rewrite")

PLACEHOLDER_TEXT = (
    "A meaningful human experience was shared here, "
    "touching on themes of growth and connection."
)

LANGUAGE_NAMES = {
    "en": "English",
    "pt": "Portuguese",
    "pt-br": "Brazilian Portuguese",
    "es": "Spanish",
    "zh": "Chinese",
    "hi": "Hindi",
    "ar": "Arabic",
    "bn": "Bengali",
    "fr": "French",
    "ru": "Russian",
    "ja": "Japanese",
    "de": "German",
    "ur": "Urdu",
    "id": "Indonesian",
}

_WORD = re.compile(r"\w+", re.UNICODE)


class RewriteError(RuntimeError):
    """Raised when no acceptable rewrite could be produced."""


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code.strip().lower(), code)


def is_supported_language(code: Optional[str]) -> bool:
    return bool(code) and code.strip().lower() in LANGUAGE_NAMES


def _words(text: str) -> List[str]:
    return [w.casefold() for w in _WORD.findall(text)]


def quotes_verbatim(source: str, candidate: str, window: int) -> bool:
    """
    True when ``candidate`` contains ``window`` consecutive words of ``source``.
    """
    source_words = _words(source)
    if len(source_words) < window:
        return False

    candidate_text = " ".join(_words(candidate))
    if not candidate_text:
        return False

    padded = f" {candidate_text} "
    for start in range(len(source_words) - window + 1):
        run = " ".join(source_words[start : start + window])
        if f" {run} " in padded:
            return True
    return False


class Rewriter:
    def __init__(self, llm: LLMClient, config: MatchingConfig):
        self._llm = llm
        self._config = config

    @property
    def model_name(self) -> str:
        return self._llm.model

    async def rewrite(self, text: str, target_language: str) -> str:
        """
        Paraphrase ``text`` in ``target_language``.

        Raises
        ------
        RewriteError
            If the provider fails or every attempt quotes the source.
        """
        system_prompt = REWRITE_PROMPT.format(language=language_name(target_language))

        for attempt in range(1, self._config.rewrite_attempts + 1):
            try:
                rewritten = await self._llm.complete(
                    text,
                    system_prompt=system_prompt,
                    temperature=0.8,
                    max_tokens=500,
                )
            except LLMError as exc:
                raise RewriteError(f"Rewrite provider failed: {exc}") from exc

            if not quotes_verbatim(text, rewritten, self._config.verbatim_window):
                return rewritten

            logger.info(
                "Rewrite attempt %d/%d quoted the source verbatim, retrying",
                attempt,
                self._config.rewrite_attempts,
            )

        raise RewriteError("Every rewrite attempt quoted the source verbatim.")

    async def translate(
        self,
        text: str,
        target_language: str,
        source_language: str = "auto",
    ) -> str:
        """
        Translate ``text``; returns it unchanged when the target is
        unsupported, equals the source, or the provider fails.
        """
        if not is_supported_language(target_language):
            logger.warning("Language %s not supported, returning original text", target_language)
            return text

        if source_language and source_language.strip().lower() == target_language.strip().lower():
            return text

        try:
            return await self._llm.complete(
                text,
                system_prompt=TRANSLATION_PROMPT.format(language=language_name(target_language)),
                temperature=0.3,
                max_tokens=1000,
            )
        except LLMError as exc:
            logger.warning("Translation to %s failed, keeping input: %s", target_language, exc)
            return text

    async def render(
        self,
        text: str,
        target_language: str,
        source_language: str = "auto",
    ) -> str:
        """
        Rewrite then translate. Raises `RewriteError` when rewriting fails.
        """
        rewritten = await self.rewrite(text, target_language)
        return await self.translate(rewritten, target_language, source_language)

    async def render_or_placeholder(
        self,
        text: str,
        target_language: str,
        source_language: str = "auto",
    ) -> str:
        try:
            return await self.render(text, target_language, source_language)
        except RewriteError as exc:
            logger.warning("Rewrite failed for %s, using placeholder: %s", target_language, exc)
            return PLACEHOLDER_TEXT

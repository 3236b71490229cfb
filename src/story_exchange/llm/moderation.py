"""
Moderation Gate

Approves or rejects user text before it is persisted or enters the matching
pipeline. The judgment itself is delegated to the chat model, driven by a
fixed policy prompt (one for stories, one for comments).

Failure Policy
--------------
The gate fails closed: if the provider is unreachable, errors, or answers
with anything that does not validate as a `ModerationVerdict`, the text is
rejected with a generic "try again" reason and ``medium`` severity.

The gate has no side effects; callers persist the decision.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .client import LLMClient, LLMError
from .parsing import StructuredOutputError, parse_model_output
from ..prompts import COMMENT_MODERATION_PROMPT, STORY_MODERATION_PROMPT

logger = logging.getLogger("stories.moderation")

UNAVAILABLE_REASON = "AI moderation temporarily unavailable. Please try again later."
MALFORMED_REASON = "Moderation error. Please try again."


class ModerationVerdict(BaseModel):
    approved: bool
    reason: Optional[str] = None
    severity: Optional[Literal["low", "medium", "high"]] = None

    model_config = ConfigDict(frozen=True)


class _RawVerdict(BaseModel):
    approved: bool
    reason: Optional[str] = Field(default=None, max_length=2000)
    severity: Optional[str] = None


def _normalize_severity(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip().lower()
    return value if value in ("low", "medium", "high") else None


class Moderator:
    def __init__(self, llm: LLMClient):
        self._llm = llm

    async def moderate(
        self,
        text: str,
        kind: Literal["story", "comment"] = "story",
    ) -> ModerationVerdict:
        """
        Classify ``text`` against the story or comment policy.

        Never raises for provider problems; see the module docstring.
        """
        system_prompt = COMMENT_MODERATION_PROMPT if kind == "comment" else STORY_MODERATION_PROMPT

        try:
            content = await self._llm.complete(
                text,
                system_prompt=system_prompt,
                temperature=0.1,
                max_tokens=200,
                json_mode=True,
            )
        except LLMError as exc:
            logger.warning("Moderation provider unavailable, rejecting: %s", exc)
            return ModerationVerdict(approved=False, reason=UNAVAILABLE_REASON, severity="medium")

        try:
            raw = parse_model_output(content, _RawVerdict)
        except StructuredOutputError as exc:
            logger.warning("Unparseable moderation verdict, rejecting: %s", exc)
            return ModerationVerdict(approved=False, reason=MALFORMED_REASON, severity="medium")

        return ModerationVerdict(
            approved=raw.approved,
            reason=raw.reason,
            severity=_normalize_severity(raw.severity),
        )

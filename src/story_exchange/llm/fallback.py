from .client import LLMClient, LLMError
from .rewrite import language_name
from ..prompts import FALLBACK_PROMPT


class FallbackGenerationError(RuntimeError):
    """Raised when a synthetic story could not be generated."""


class FallbackGenerator:
    """
    Writes a synthetic first-person story related to a seed story.

    Used when no real story is similar enough, or when the matched story
    could not be rewritten. The generated story describes a different
    situation so the seed's author stays anonymous.
    """

    def __init__(self, llm: LLMClient):
        self._llm = llm

    @property
    def model_name(self) -> str:
        return self._llm.model

    async def generate(self, seed_text: str, language: str) -> str:
        try:
            return await self._llm.complete(
                seed_text,
                system_prompt=FALLBACK_PROMPT.format(language=language_name(language)),
                temperature=0.9,
                max_tokens=600,
            )
        except LLMError as exc:
            raise FallbackGenerationError(f"Fallback generation failed: {exc}") from exc

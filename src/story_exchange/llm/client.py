import logging
from typing import List, Dict, Any, Optional

import httpx

from ..config import settings

logger = logging.getLogger("stories.llm")


class LLMError(RuntimeError):
    """Raised when a chat completion cannot be obtained."""


class LLMClient:
    """
    Minimal client for an OpenAI-compatible chat completions endpoint.

    Stateless apart from its configuration; one instance is shared by all
    moderation, classification, rewriting and generation calls.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or settings.llm_api_key.get_secret_value()
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout

    async def chat(
        self,
        system_prompt: Optional[str],
        messages: List[Dict[str, Any]],
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> Dict[str, Any]:
        """
        Returns the raw message dict from the provider, e.g.:
        {
            "role": "assistant",
            "content": "..."
        }

        Raises
        ------
        LLMError
            On transport errors, non-2xx responses or a malformed body.
        """
        prompt_messages = list(messages)
        if system_prompt:
            prompt_messages = [{"role": "system", "content": system_prompt}] + prompt_messages

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": prompt_messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "Chat completion failed (%s): %s",
                type(exc).__name__,
                str(exc),
            )
            raise LLMError(f"Chat completion failed: {type(exc).__name__}") from exc

        try:
            return data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("Chat completion response missing 'choices[0].message'.") from exc

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """
        Single-turn convenience wrapper returning the stripped text content.
        """
        message = await self.chat(
            system_prompt,
            [{"role": "user", "content": prompt}],
            **kwargs,
        )
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise LLMError("Chat completion returned empty content.")
        return content.strip()

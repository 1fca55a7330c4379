"""Text generation provider client (OpenAI-compatible chat completions)"""

import logging
import re
from typing import Protocol

from openai import APITimeoutError, AsyncOpenAI, OpenAIError, RateLimitError
from openai.types.chat import ChatCompletionMessageParam

from core.exceptions import GenerationUnavailable

from .prompts import SYSTEM_PROMPT, first_line

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<think>[\s\S]*?</think>")
_OPEN_THINK_RE = re.compile(r"<think>[\s\S]*$")


class LineGenerator(Protocol):
    """Produces one overlay line per call or raises ``GenerationUnavailable``."""

    async def generate_line(self, prompt: str) -> str: ...


class OpenAILineGenerator:
    """One-shot chat completion per call; retries are the caller's job.

    The client is created with ``max_retries=0`` so a slow or failing
    provider costs at most one timeout per attempt.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 12.0,
        client: AsyncOpenAI | None = None,
    ):
        if not client and (not api_key or api_key.strip() == ""):
            raise ValueError("Provider API key is required")

        self.model = model
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

        logger.info(f"Line generator initialized: model={model}")

    async def generate_line(self, prompt: str) -> str:
        messages: list[ChatCompletionMessageParam] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                temperature=0.9,
                top_p=0.95,
                max_tokens=120,
                messages=messages,
            )
        except APITimeoutError as e:
            raise GenerationUnavailable(f"{self.model} timed out") from e
        except RateLimitError as e:
            raise GenerationUnavailable(f"{self.model} rate limited") from e
        except OpenAIError as e:
            raise GenerationUnavailable(f"{self.model} failed: {type(e).__name__}") from e

        if not completion.choices:
            logger.warning(f"Generator [{self.model}]: no choices")
            return ""

        raw = completion.choices[0].message.content or ""
        text = _THINK_RE.sub("", raw)
        text = _OPEN_THINK_RE.sub("", text)
        line = first_line(text)

        logger.debug(f"Generator [{self.model}]: raw={len(raw)}, line={len(line)}")
        return line

    async def close(self) -> None:
        await self.client.close()

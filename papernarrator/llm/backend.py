"""
Structured completion backends.

A structured completion sends a system prompt, a user prompt, optional
page images and optional few-shot examples, and returns an instance of a
pydantic schema.  :class:`CompletionBackend` applies the bounded retry
policy uniformly; subclasses only implement a single attempt.

Usage::

    backend = OpenAICompletionBackend(model="gpt-4o-2024-08-06")
    result = await backend.complete(SYSTEM, "Text:\\n...", TaggingResult)
"""

import base64
import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Type, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

from .retry import with_retries

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_MODEL = "gpt-4o-2024-08-06"


@dataclass(frozen=True)
class FewShotExample:
    """An example image and the output the model should produce for it."""

    image_path: Path
    assistant_output: str


_EXAMPLE_IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".webp")


def load_few_shot_examples(directory) -> List[FewShotExample]:
    """
    Pair every image in *directory* with the ``.json`` file of the same stem.

    The JSON text is sent verbatim as the assistant turn, so it should be a
    valid instance of the schema the examples are used with.  Images without
    an answer file are skipped.

    Raises:
        FileNotFoundError: If *directory* does not exist.
    """
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Few-shot example directory not found: {root}")

    examples: List[FewShotExample] = []
    for image in sorted(root.iterdir()):
        if image.suffix.lower() not in _EXAMPLE_IMAGE_SUFFIXES:
            continue
        answer = image.with_suffix(".json")
        if not answer.exists():
            logger.warning("Skipping few-shot image without %s", answer.name)
            continue
        examples.append(FewShotExample(image, answer.read_text(encoding="utf-8").strip()))

    logger.info("Loaded %d few-shot examples from %s", len(examples), root)
    return examples


class CompletionBackend(ABC):
    """Interface for schema-constrained generative completions."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Type[M],
        images: Sequence[Path] = (),
        max_output_tokens: int = 16384,
        retries: int = 3,
        few_shot_examples: Sequence[FewShotExample] = (),
        temperature: float = 0.2,
    ) -> M:
        """
        Run one structured completion with bounded retries.

        Returns:
            A validated instance of *schema*.

        Raises:
            RetriesExhaustedError: If every attempt failed.
        """
        return await with_retries(
            lambda: self._complete_once(
                system_prompt,
                user_prompt,
                schema,
                list(images),
                max_output_tokens,
                list(few_shot_examples),
                temperature,
            ),
            retries=retries,
            label=f"completion[{schema.__name__}]",
        )

    @abstractmethod
    async def _complete_once(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Type[M],
        images: List[Path],
        max_output_tokens: int,
        few_shot_examples: List[FewShotExample],
        temperature: float,
    ) -> M:
        """Make a single attempt; raise on any failure."""


def _image_part(path: Path) -> Dict:
    mime = mimetypes.guess_type(str(path))[0] or "image/png"
    data = base64.b64encode(Path(path).read_bytes()).decode("utf-8")
    return {"type": "image_url", "image_url": {"url": f"data:{mime};base64,{data}"}}


class OpenAICompletionBackend(CompletionBackend):
    """
    Structured outputs through the OpenAI chat completions API.

    The async client is created on first use so constructing the backend
    never needs credentials; ``OPENAI_API_KEY`` is read by the SDK.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        client: Optional[AsyncOpenAI] = None,
        frequency_penalty: float = 0.0,
    ):
        self.model = model
        self.frequency_penalty = frequency_penalty
        self._client = client

    def _ensure_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def _complete_once(
        self,
        system_prompt,
        user_prompt,
        schema,
        images,
        max_output_tokens,
        few_shot_examples,
        temperature,
    ):
        messages: List[Dict] = [{"role": "system", "content": system_prompt}]
        for example in few_shot_examples:
            messages.append({"role": "user", "content": [_image_part(example.image_path)]})
            messages.append({"role": "assistant", "content": example.assistant_output})

        content: List[Dict] = []
        if user_prompt:
            content.append({"type": "text", "text": user_prompt})
        content.extend(_image_part(p) for p in images)
        messages.append({"role": "user", "content": content})

        completion = await self._ensure_client().chat.completions.parse(
            model=self.model,
            messages=messages,
            response_format=schema,
            max_completion_tokens=max_output_tokens,
            temperature=temperature,
            frequency_penalty=self.frequency_penalty,
        )

        message = completion.choices[0].message
        if message.refusal:
            raise RuntimeError(f"Model refused: {message.refusal}")
        if message.parsed is None:
            raise RuntimeError(
                f"No parsed output (finish_reason={completion.choices[0].finish_reason})"
            )
        return message.parsed

    def __repr__(self) -> str:
        return f"OpenAICompletionBackend(model={self.model})"

"""Structured completion backends, retries, and batched fan-out."""

from .backend import CompletionBackend, FewShotExample, OpenAICompletionBackend, load_few_shot_examples
from .batching import run_in_batches
from .retry import with_retries

__all__ = [
    "CompletionBackend",
    "FewShotExample",
    "OpenAICompletionBackend",
    "run_in_batches",
    "load_few_shot_examples",
    "with_retries",
]

"""Built-in node executors, one per node kind."""

from .base import NodeExecutor, render_text, combine_text, fill_template
from .text import SourceTextExecutor, OutputExecutor
from .llm import LLMExecutor, CompletionProvider
from .media import ImageStubExecutor, AudioStubExecutor, AUDIO_FAULT_MESSAGE
from .condition import ConditionExecutor
from .transform import TransformExecutor


def builtin_executors(provider=None):
    """Instantiate the executor for every node kind."""
    return [
        SourceTextExecutor(),
        LLMExecutor(provider),
        ImageStubExecutor(),
        AudioStubExecutor(),
        OutputExecutor(),
        ConditionExecutor(),
        TransformExecutor(),
    ]


__all__ = [
    "NodeExecutor",
    "render_text",
    "combine_text",
    "fill_template",
    "SourceTextExecutor",
    "OutputExecutor",
    "LLMExecutor",
    "CompletionProvider",
    "ImageStubExecutor",
    "AudioStubExecutor",
    "AUDIO_FAULT_MESSAGE",
    "ConditionExecutor",
    "TransformExecutor",
    "builtin_executors",
]

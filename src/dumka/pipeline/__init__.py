"""Message handling from quota check to persisted history."""

from .answers import AnswerComposer
from .pipeline import (
    AnswerPipeline,
    Channel,
    InboundMessage,
    PipelineResult,
    Stage,
    quota_message,
)

__all__ = [
    "AnswerComposer",
    "AnswerPipeline",
    "Channel",
    "InboundMessage",
    "PipelineResult",
    "Stage",
    "quota_message",
]

"""Processors: the intake pipeline and the mail fetcher."""

from .base import BaseProcessor
from .pipeline import MessagePipeline
from .fetch import MailFetcher

__all__ = ["BaseProcessor", "MessagePipeline", "MailFetcher"]

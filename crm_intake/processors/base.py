"""
Abstract base class for intake processors.
"""

from abc import ABC, abstractmethod


class BaseProcessor(ABC):
    """Abstract processor interface for intake pipelines."""

    @abstractmethod
    def process(self, acting_user_id: str | None = None) -> dict:
        """
        Run one unit of work.

        Args:
            acting_user_id: User recorded as creator of any records written

        Returns:
            Processing statistics dict
        """
        pass

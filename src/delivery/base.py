"""
Module to contain base class for Publishers
"""
from abc import ABC, abstractmethod

from core.entities import Post, PostReference


class Publisher(ABC):
    """
    Base interface for all publishing targets.
    Shared by every source loop, so implementations must be safe for concurrent use.
    """

    name: str

    async def sync(self) -> None:
        """
        Persist or refresh session state.
        Called once per polling cycle.
        """
        return None

    @abstractmethod
    async def publish(self, post: Post) -> PostReference:
        """
        Publish the post.
        Must raise PublishError on failure (handled upstream).
        """
        raise NotImplementedError

"""
Memory Queue - Deferred replies for when nothing else matches
=============================================================
"""

from typing import List, Optional

from .random_source import RandomSource, pick_index


class MemoryQueue:
    """
    Bounded buffer of deferred replies.

    Replies are appended at the tail and the oldest entry is evicted once
    ``capacity`` is exceeded. Fetching does not dequeue from the head: it
    removes a randomly chosen entry and shifts the later entries down.

    Attributes:
        capacity (int): Maximum number of stored replies
    """

    def __init__(self, capacity: int = 20):
        self.capacity = capacity
        self._items: List[str] = []

    def save(self, text: str) -> None:
        """Append a reply, evicting from the head on overflow."""
        self._items.append(text)
        while len(self._items) > self.capacity:
            self._items.pop(0)

    def fetch(self, random_func: RandomSource) -> Optional[str]:
        """
        Remove and return one randomly picked reply.

        Returns:
            The reply, or None when the queue is empty
        """
        if not self._items:
            return None
        return self._items.pop(pick_index(random_func, len(self._items)))

    def clear(self) -> None:
        self._items.clear()

    def snapshot(self) -> List[str]:
        """Copy of the current contents, oldest first."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

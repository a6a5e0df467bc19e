"""
Session State - Everything one conversation mutates
===================================================

Compiled rules are shared; a SessionState belongs to exactly one
conversation and must not be used by concurrent ``transform`` calls.
"""

from typing import Dict, Tuple

from .compiler import CompiledRuleSet
from .memory import MemoryQueue

ChoiceKey = Tuple[int, int]


class SessionState:
    """
    Per-conversation mutable state.

    Attributes:
        memory (MemoryQueue): Deferred replies
        last_choice (dict): (rule index, decomposition index) -> last
            reassembly index used, -1 when none
        quit (bool): Set when the last input was a quit phrase
    """

    def __init__(self, rule_set: CompiledRuleSet, mem_size: int = 20):
        self._keys = [
            (rule_index, decomposition_index)
            for rule_index, rule in enumerate(rule_set.keywords)
            for decomposition_index in range(len(rule.decompositions))
        ]
        self.memory = MemoryQueue(mem_size)
        self.last_choice: Dict[ChoiceKey, int] = {}
        self.quit = False
        self.reset()

    def reset(self) -> None:
        """Forget memory, reassembly history and the quit flag."""
        self.quit = False
        self.memory.clear()
        self.last_choice = dict.fromkeys(self._keys, -1)

    def next_choice(self, key: ChoiceKey, candidate: int, count: int) -> int:
        """
        Turn a random candidate into the reassembly index to use.

        A candidate equal to the previous pick is bumped to the next index,
        wrapping to 0 (and forgetting the history) past the end, so the
        same reassembly is never chosen twice in a row.

        Args:
            key: (rule index, decomposition index)
            candidate: Randomly drawn index
            count: Number of reassemblies

        Returns:
            Index to use
        """
        last = self.last_choice.get(key, -1)
        if candidate != last:
            self.last_choice[key] = candidate
            return candidate

        choice = last + 1
        if choice >= count:
            self.last_choice[key] = -1
            return 0

        self.last_choice[key] = choice
        return choice

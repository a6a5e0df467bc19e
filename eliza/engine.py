"""
Response Engine - Keyword dispatch, decomposition and reassembly
================================================================

This module implements the conversation loop proper: it splits user
input into sentence fragments, scans them for keywords in rank order,
decomposes the fragment with the first applicable pattern and assembles
a reply from one of the pattern's templates.
"""

import re
from typing import List, Optional

from core.config import EngineConfig
from core.exceptions import ConfigError
from core.logging import get_logger

from .compiler import CompiledRuleSet, Redirect, compile_script
from .random_source import RandomSource, ensure_random_source, pick_index
from .script import Script
from .session import SessionState
from .substitutions import normalize_spacing, post_transform

logger = get_logger(__name__)

SENTENCE_BREAK = "."
LOSS_FOR_WORDS = "I am at a loss for words."

_BLACKLIST_RE = re.compile(r"[@#$%^&*()_+=~`{\[}\]|:<>/\\\t\r\n\f\v]")
_DASH_BREAK_RE = re.compile(r"\s+-+\s+")
_PUNCTUATION_BREAK_RE = re.compile(r"\s*[,.?!;]+\s*")
_BUT_BREAK_RE = re.compile(r"\s*\bbut\b\s*")
_MULTI_SPACE_RE = re.compile(r"\s{2,}")
_PARAM_RE = re.compile(r"\((\d+)\)")


def split_sentences(text: str) -> List[str]:
    """
    Normalize raw input and split it into sentence fragments.

    Lowercases, blanks out symbol characters, and treats dashes,
    ``, . ? ! ;`` runs and the word "but" as sentence breaks.
    Empty fragments are dropped.
    """
    text = text.lower()
    text = _BLACKLIST_RE.sub(" ", text)
    text = _DASH_BREAK_RE.sub(SENTENCE_BREAK, text)
    text = _PUNCTUATION_BREAK_RE.sub(SENTENCE_BREAK, text)
    text = _BUT_BREAK_RE.sub(SENTENCE_BREAK, text)
    text = _MULTI_SPACE_RE.sub(" ", text)
    return [part for part in text.split(SENTENCE_BREAK) if part]


class ElizaEngine:
    """
    One conversation with a compiled rule set.

    The rule set is read-only and may be shared between engines; the
    session state (memory, reassembly history, quit flag) is owned by
    this engine alone.

    Example:
        rules = compile_script(default_script())
        engine = ElizaEngine(rules, SeededRandom(1234))

        print(engine.get_initial())
        print(engine.transform("I remember my childhood"))
        if engine.quit:
            ...
    """

    def __init__(
        self,
        rule_set: CompiledRuleSet,
        random_func: RandomSource,
        config: Optional[EngineConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            rule_set: Output of the rule compiler
            random_func: Zero-argument callable returning floats in [0, 1)
            config: Engine options (defaults when omitted)

        Raises:
            ConfigError: On a missing random source, invalid options or a
                rule set without fallback rule
        """
        self.random_func = ensure_random_source(random_func)
        self.config = config or EngineConfig()
        self.config.validate()

        if rule_set.fallback_index is None:
            raise ConfigError("Rule set has no fallback rule")

        self.rules = rule_set
        self.session = SessionState(rule_set, self.config.mem_size)

    @classmethod
    def from_script(
        cls,
        script: Script,
        random_func: RandomSource,
        config: Optional[EngineConfig] = None,
    ) -> "ElizaEngine":
        """Compile ``script`` and start a conversation with it."""
        return cls(compile_script(script), random_func, config)

    @property
    def quit(self) -> bool:
        """True when the last input was a quit phrase."""
        return self.session.quit

    @property
    def memory(self) -> List[str]:
        return self.session.memory.snapshot()

    def reset(self) -> None:
        """Start over with the same rules."""
        self.session.reset()

    def set_seed(self, seed: Optional[int] = None) -> None:
        """
        Restart the random sequence and the conversation.

        Only seedable sources (those with a ``reseed`` method, such as
        SeededRandom) qualify. A missing or zero seed selects the default.

        Raises:
            ConfigError: If the random source cannot be reseeded
        """
        reseed = getattr(self.random_func, "reseed", None)
        if reseed is None:
            raise ConfigError(
                "Random source cannot be reseeded", {"source": repr(self.random_func)}
            )
        reseed(seed)
        self.reset()

    def get_initial(self) -> str:
        return self._pick(self.rules.initials)

    def get_final(self) -> str:
        return self._pick(self.rules.finals)

    def transform(self, text: str) -> str:
        """
        Produce a reply for one line of user input.

        Tries, in order: keyword rules per sentence fragment, a deferred
        reply from memory, the ``xnone`` rule. A quit phrase ends the
        call immediately with a farewell and raises the quit flag.

        Args:
            text: Raw user input

        Returns:
            Reply text (never raises for any input)
        """
        self.session.quit = False
        text = "" if text is None else str(text)

        for fragment in split_sentences(text):
            if fragment in self.rules.quits:
                self.session.quit = True
                return self.get_final()

            fragment = self.rules.pres.apply(fragment)

            for index, rule in enumerate(self.rules.keywords):
                if not rule.applies_to(fragment):
                    continue
                reply = self._exec_rule(index, fragment)
                if reply is not None:
                    return self._finish(reply)

        reply = self.session.memory.fetch(self.random_func)
        if reply is not None:
            logger.debug("Replying from memory", extra={"trace": {"remaining": len(self.session.memory)}})
            return self._finish(reply)

        reply = self._exec_rule(self.rules.fallback_index, " ")
        if reply is not None:
            return self._finish(reply)

        return LOSS_FOR_WORDS

    def _exec_rule(self, index: int, sentence: str, depth: int = 0) -> Optional[str]:
        """
        Run one keyword rule against a sentence fragment.

        Memory-flagged decompositions store their reply and let the scan
        continue; the first other match returns.

        Returns:
            Assembled reply, or None if no decomposition produced one
        """
        rule = self.rules.keywords[index]

        for d_index, decomposition in enumerate(rule.decompositions):
            match = decomposition.match(sentence)
            if match is None:
                continue

            count = len(decomposition.reassemblies)
            choice = self.session.next_choice(
                (index, d_index), pick_index(self.random_func, count), count
            )
            reassembly = decomposition.reassemblies[choice]

            if self.config.debug:
                logger.debug("rule matched", extra={"trace": {
                    "keyword": rule.keyword,
                    "rank": rule.rank,
                    "decomposition": decomposition.source,
                    "reassembly": reassembly,
                    "memory": decomposition.save_to_memory,
                }})

            if isinstance(reassembly, Redirect):
                if reassembly.index is None:
                    logger.debug("goto target not found", extra={"trace": {"target": reassembly.target}})
                    continue
                if depth >= self.config.max_goto_depth:
                    logger.warning("goto depth limit reached", extra={"trace": {"keyword": rule.keyword, "depth": depth}})
                    continue
                return self._exec_rule(reassembly.index, sentence, depth + 1)

            reply = normalize_spacing(self._assemble(reassembly.template, match))

            if decomposition.save_to_memory:
                self._remember(reply)
                continue

            return reply

        return None

    def _assemble(self, template: str, match: "re.Match") -> str:
        """Fill ``(N)`` placeholders with person-swapped capture groups."""
        def param(m):
            group = int(m.group(1))
            if group > match.re.groups:
                return ""
            return self.rules.posts.apply(match.group(group) or "")

        return _PARAM_RE.sub(param, template)

    def _remember(self, reply: str) -> None:
        self.session.memory.save(reply)
        logger.debug("Saved reply to memory", extra={"trace": {"stored": len(self.session.memory)}})

    def _finish(self, reply: str) -> str:
        return post_transform(
            reply,
            self.rules.post_transforms,
            capitalize_first_letter=self.config.capitalize_first_letter,
        )

    def _pick(self, choices) -> str:
        if not choices:
            return ""
        return choices[pick_index(self.random_func, len(choices))]

"""
Substitutions - Word rewrite tables and final reply cleanup
==========================================================

Two word-level rewrite tables drive person swapping:

- the pre-substitution table rewrites user input before keyword scanning
  (``dont`` -> ``don't``, ``machine`` -> ``computer``)
- the post-substitution table rewrites captured text before it is
  spliced into a reply (``my`` -> ``your``, ``i`` -> ``you``)

Both compile into one whole-word alternation plus a lookup map. The
post-transform rules are cosmetic regex rewrites run on every reply.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Tuple

from core.exceptions import RuleCompileError

# Never matches anything, used for empty tables
_NEVER_MATCHES = re.compile(r"(?!x)x")

_MULTI_SPACE_RE = re.compile(r"\s{2,}")
_SPACE_BEFORE_PERIOD_RE = re.compile(r"\s+\.")
_FIRST_LOWER_RE = re.compile(r"^[a-z]")
_GROUP_REF_RE = re.compile(r"\\(\d+)|\\g<(\d+)>")


@dataclass(frozen=True)
class SubstitutionTable:
    """
    Compiled word rewrite table.

    Matching is case-sensitive against already-lowercased text and only
    replaces whole words. Each match is replaced once; replacements are
    never rescanned, so ``i -> you`` and ``you -> I`` can coexist.

    Attributes:
        pattern: Alternation over all source words, word-boundary wrapped
        mapping: Read-only source word -> replacement
    """
    pattern: Pattern = _NEVER_MATCHES
    mapping: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "SubstitutionTable":
        """
        Build a table from ordered (source, replacement) pairs.

        Alternation order follows the pairs; a repeated source word keeps
        its first position but the last replacement.
        """
        words: List[str] = []
        mapping: Dict[str, str] = {}
        for source, replacement in pairs:
            source = str(source)
            if source not in mapping:
                words.append(source)
            mapping[source] = str(replacement)

        if not words:
            return cls()

        alternation = "|".join(re.escape(word) for word in words)
        return cls(
            pattern=re.compile(r"\b(" + alternation + r")\b"),
            mapping=MappingProxyType(mapping),
        )

    def apply(self, text: str) -> str:
        """Replace every whole-word occurrence, scanning left to right."""
        return self.pattern.sub(lambda m: self.mapping[m.group(1)], text)

    def __len__(self) -> int:
        return len(self.mapping)


@dataclass(frozen=True)
class PostTransform:
    """A single cosmetic rewrite (pattern, replacement) applied globally."""
    pattern: Pattern
    replacement: str

    @classmethod
    def compile(cls, pattern: str, replacement: str) -> "PostTransform":
        """
        Compile one rewrite rule.

        The replacement uses Python ``re.sub`` syntax (``\\1``).

        Raises:
            RuleCompileError: On an invalid pattern or a group reference
                the pattern cannot satisfy
        """
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise RuleCompileError(
                f"Invalid post-transform pattern: {e}", {"pattern": pattern}
            )

        for m in _GROUP_REF_RE.finditer(replacement):
            group = int(m.group(1) or m.group(2))
            if group > compiled.groups:
                raise RuleCompileError(
                    "Post-transform replacement references a missing group",
                    {"pattern": pattern, "replacement": replacement, "group": group},
                )

        return cls(pattern=compiled, replacement=replacement)

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


def normalize_spacing(text: str) -> str:
    """Collapse runs of whitespace and drop stray spaces before periods."""
    text = _MULTI_SPACE_RE.sub(" ", text)
    return _SPACE_BEFORE_PERIOD_RE.sub(".", text)


def post_transform(
    text: str,
    transforms: Iterable[PostTransform] = (),
    capitalize_first_letter: bool = True,
) -> str:
    """
    Final cleanup for every reply leaving the engine.

    Steps, in order: spacing cleanup, each rewrite rule in table order,
    then uppercase of a leading lowercase letter.

    Args:
        text: Assembled reply
        transforms: Ordered rewrite rules
        capitalize_first_letter: Uppercase a lowercase first character

    Returns:
        Cleaned reply
    """
    text = normalize_spacing(text)
    for transform in transforms:
        text = transform.apply(text)

    if capitalize_first_letter and _FIRST_LOWER_RE.match(text):
        text = text[0].upper() + text[1:]

    return text


def compile_post_transforms(
    rules: Optional[Iterable[Tuple[str, str]]],
) -> Tuple[PostTransform, ...]:
    """Compile ordered (pattern, replacement) pairs into rewrite rules."""
    return tuple(PostTransform.compile(pattern, replacement) for pattern, replacement in rules or ())

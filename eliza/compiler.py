"""
Rule Compiler - Turning a rule script into matchable form
=========================================================

Decomposition patterns are written in a small wildcard language::

    "* i remember *"      two captures around a literal phrase
    "* i @belief *"       @belief expands to (belief|feel|think|...)
    "$ * my *"            leading $ defers the reply into memory

Compilation expands synonyms, turns every ``*`` into a greedy capture
group bounded by word boundaries, and lets literal whitespace match any
run of whitespace. The result, a CompiledRuleSet, is immutable and may be
shared by any number of conversations.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from core.exceptions import RuleCompileError
from core.logging import get_logger

from .script import KeywordRule, RawKeyword, Script, coerce_keyword_rule
from .substitutions import PostTransform, SubstitutionTable, compile_post_transforms

logger = get_logger(__name__)

FALLBACK_KEYWORD = "xnone"

CAPTURE = r"\s*(.*)\s*"
WORD_BOUNDARY = r"\b"

_MEMORY_FLAG_RE = re.compile(r"^\$ *")
_SYNONYM_REF_RE = re.compile(r"@(\S+)")
_INTERNAL_WILDCARD_RE = re.compile(r"(\S)\s*\*\s*(?=(\S))")
_LEADING_WILDCARD_RE = re.compile(r"^\s*\*\s*(\S)")
_TRAILING_WILDCARD_RE = re.compile(r"(\S)\s*\*\s*$")
_WILDCARD_ONLY_RE = re.compile(r"^\s*\*\s*$")
_WHITESPACE_RE = re.compile(r"\s+")
_GOTO_RE = re.compile(r"^goto ", re.IGNORECASE)


@dataclass(frozen=True)
class Literal:
    """Reply template with ``(N)`` placeholders for capture groups."""
    template: str


@dataclass(frozen=True)
class Redirect:
    """
    ``goto <keyword>`` reassembly.

    ``index`` is the target's position in the rank-sorted keyword table,
    or None when no such keyword exists.
    """
    target: str
    index: Optional[int] = None


Reassembly = Union[Literal, Redirect]


@dataclass(frozen=True)
class CompiledDecomposition:
    source: str
    pattern: Pattern
    reassemblies: Tuple[Reassembly, ...]
    save_to_memory: bool = False

    def match(self, sentence: str) -> Optional["re.Match"]:
        """
        Decompose a newline-free sentence fragment.

        A pattern opening with a capture can only match from position 0
        on such input, so it is anchored there instead of searched.
        """
        if self.pattern.pattern.startswith(CAPTURE):
            return self.pattern.match(sentence)
        return self.pattern.search(sentence)


@dataclass(frozen=True)
class CompiledKeyword:
    keyword: str
    rank: int
    original_index: int
    matcher: Pattern
    decompositions: Tuple[CompiledDecomposition, ...]

    def applies_to(self, text: str) -> bool:
        return self.matcher.search(text) is not None


@dataclass(frozen=True)
class CompiledRuleSet:
    """
    Immutable output of the rule compiler.

    Attributes:
        keywords: Rules sorted by rank descending, original order among equals
        pres: Input rewrite table
        posts: Captured-text rewrite table
        post_transforms: Cosmetic reply rewrites
        quits: Lowercased quit phrases
        initials: Greetings
        finals: Farewells
    """
    keywords: Tuple[CompiledKeyword, ...]
    pres: SubstitutionTable = field(default_factory=SubstitutionTable)
    posts: SubstitutionTable = field(default_factory=SubstitutionTable)
    post_transforms: Tuple[PostTransform, ...] = ()
    quits: FrozenSet[str] = frozenset()
    initials: Tuple[str, ...] = ()
    finals: Tuple[str, ...] = ()

    def index_of(self, keyword: str) -> Optional[int]:
        """Position of the first rule with exactly this keyword, or None."""
        for index, rule in enumerate(self.keywords):
            if rule.keyword == keyword:
                return index
        return None

    @property
    def fallback_index(self) -> Optional[int]:
        return self.index_of(FALLBACK_KEYWORD)


def build_synonym_patterns(synonyms: Optional[Mapping[str, Iterable[str]]]) -> Dict[str, str]:
    """Map each canonical word to its alternation group ``(word|syn1|syn2)``."""
    patterns = {}
    for word, equivalents in (synonyms or {}).items():
        patterns[word] = "(" + "|".join([word] + list(equivalents)) + ")"
    return patterns


def _expand_internal(match: "re.Match") -> str:
    left, right = match.group(1), match.group(2)
    expanded = left
    if left != ")":
        expanded += WORD_BOUNDARY
    expanded += CAPTURE
    if right not in ("(", "\\"):
        expanded += WORD_BOUNDARY
    return expanded


def expand_wildcards(pattern: str) -> str:
    """
    Replace ``*`` markers with capture groups.

    Word boundaries are not placed next to group parentheses or escapes,
    where they would change or break the expression.
    """
    if _WILDCARD_ONLY_RE.match(pattern):
        return CAPTURE

    pattern = _INTERNAL_WILDCARD_RE.sub(_expand_internal, pattern)

    m = _LEADING_WILDCARD_RE.match(pattern)
    if m:
        prefix = CAPTURE
        if m.group(1) not in (")", "\\"):
            prefix += WORD_BOUNDARY
        pattern = prefix + pattern[m.end() - 1:]

    m = _TRAILING_WILDCARD_RE.search(pattern)
    if m:
        prefix = pattern[:m.start() + 1]
        if m.group(1) != "(":
            prefix += WORD_BOUNDARY
        pattern = prefix + CAPTURE

    return pattern


def translate_pattern(pattern: str, synonym_patterns: Optional[Mapping[str, str]] = None) -> Tuple[str, bool]:
    """
    Translate a decomposition pattern into regex source.

    Args:
        pattern: Source pattern
        synonym_patterns: Output of build_synonym_patterns

    Returns:
        Tuple of (regex source, save-to-memory flag)
    """
    synonym_patterns = synonym_patterns or {}

    save_to_memory = pattern.startswith("$")
    if save_to_memory:
        pattern = _MEMORY_FLAG_RE.sub("", pattern, count=1)

    def synonym(m):
        name = m.group(1)
        if name not in synonym_patterns:
            logger.debug(f"No synonyms for @{name}, using the bare word")
        return synonym_patterns.get(name, name)

    pattern = _SYNONYM_REF_RE.sub(synonym, pattern)
    pattern = expand_wildcards(pattern)
    pattern = _WHITESPACE_RE.sub(r"\\s+", pattern)

    return pattern, save_to_memory


def parse_reassembly(text: str) -> Reassembly:
    if _GOTO_RE.match(text):
        return Redirect(target=text[5:])
    return Literal(template=text)


def _compile_regex(source: str, keyword: str, raw: str, flags: int = 0) -> Pattern:
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise RuleCompileError(
            f"Pattern does not compile: {e}",
            {"keyword": keyword, "pattern": raw, "compiled": source},
        )


def _compile_decomposition(rule: KeywordRule, index: int, synonym_patterns: Mapping[str, str]):
    decomposition = rule.decompositions[index]
    if not decomposition.reassemblies:
        raise RuleCompileError(
            "Decomposition has no reassemblies",
            {"keyword": rule.keyword, "pattern": decomposition.pattern},
        )

    source, save_to_memory = translate_pattern(decomposition.pattern, synonym_patterns)
    return CompiledDecomposition(
        source=decomposition.pattern,
        pattern=_compile_regex(source, rule.keyword, decomposition.pattern),
        reassemblies=tuple(parse_reassembly(r) for r in decomposition.reassemblies),
        save_to_memory=save_to_memory,
    )


def _resolve_redirects(keywords: List[CompiledKeyword]) -> List[CompiledKeyword]:
    """Attach table indices to every goto target."""
    positions: Dict[str, int] = {}
    for index, rule in enumerate(keywords):
        positions.setdefault(rule.keyword, index)

    resolved = []
    for rule in keywords:
        decompositions = []
        for d in rule.decompositions:
            reassemblies = tuple(
                Redirect(r.target, positions.get(r.target)) if isinstance(r, Redirect) else r
                for r in d.reassemblies
            )
            decompositions.append(
                CompiledDecomposition(d.source, d.pattern, reassemblies, d.save_to_memory)
            )
        resolved.append(
            CompiledKeyword(rule.keyword, rule.rank, rule.original_index, rule.matcher, tuple(decompositions))
        )
    return resolved


def _check_redirect_cycles(keywords: Sequence[CompiledKeyword]) -> None:
    """
    Reject rule sets whose goto redirections can loop.

    Raises:
        RuleCompileError: With the keyword path of the first cycle found
    """
    edges = {
        index: sorted({
            r.index
            for d in rule.decompositions
            for r in d.reassemblies
            if isinstance(r, Redirect) and r.index is not None
        })
        for index, rule in enumerate(keywords)
    }

    # 0 = unvisited, 1 = on stack, 2 = done
    state = dict.fromkeys(edges, 0)

    for start in edges:
        if state[start]:
            continue
        path = [start]
        stack = [iter(edges[start])]
        state[start] = 1
        while stack:
            target = next(stack[-1], None)
            if target is None:
                state[path.pop()] = 2
                stack.pop()
            elif state[target] == 1:
                cycle = path[path.index(target):] + [target]
                raise RuleCompileError(
                    "goto redirections form a cycle",
                    {"cycle": " -> ".join(keywords[i].keyword for i in cycle)},
                )
            elif state[target] == 0:
                state[target] = 1
                path.append(target)
                stack.append(iter(edges[target]))


def compile_keywords(
    raw_keywords: Iterable[RawKeyword],
    synonyms: Optional[Mapping[str, Iterable[str]]] = None,
) -> Tuple[CompiledKeyword, ...]:
    """
    Compile keyword rules and sort them into scan order.

    Inputs are never modified, so compiling the same data twice yields
    equal results.

    Args:
        raw_keywords: KeywordRule objects, mappings, or canonical lists
        synonyms: Canonical word -> equivalent words

    Returns:
        Rules sorted by rank descending, ties in original order

    Raises:
        RuleCompileError: On any unusable rule data
    """
    synonym_patterns = build_synonym_patterns(synonyms)
    rules = [coerce_keyword_rule(entry) for entry in raw_keywords]

    fallbacks = [r for r in rules if r.keyword == FALLBACK_KEYWORD]
    if len(fallbacks) != 1:
        raise RuleCompileError(
            f"Exactly one '{FALLBACK_KEYWORD}' rule is required, found {len(fallbacks)}"
        )
    if fallbacks[0].rank != 0:
        raise RuleCompileError(
            f"The '{FALLBACK_KEYWORD}' rule must have rank 0", {"rank": fallbacks[0].rank}
        )

    compiled = []
    for original_index, rule in enumerate(rules):
        compiled.append(CompiledKeyword(
            keyword=rule.keyword,
            rank=rule.rank,
            original_index=original_index,
            matcher=_compile_regex(
                WORD_BOUNDARY + rule.keyword + WORD_BOUNDARY, rule.keyword, rule.keyword, re.IGNORECASE
            ),
            decompositions=tuple(
                _compile_decomposition(rule, i, synonym_patterns)
                for i in range(len(rule.decompositions))
            ),
        ))

    compiled.sort(key=lambda k: (-k.rank, k.original_index))
    compiled = _resolve_redirects(compiled)
    _check_redirect_cycles(compiled)

    for rule in compiled:
        for d in rule.decompositions:
            for r in d.reassemblies:
                if isinstance(r, Redirect) and r.index is None:
                    logger.warning(f"'{rule.keyword}' redirects to unknown keyword '{r.target}'")

    return tuple(compiled)


def compile_rules(
    keywords: Iterable[RawKeyword],
    synonyms: Optional[Mapping[str, Iterable[str]]] = None,
    pres: Optional[Iterable[Tuple[str, str]]] = None,
    posts: Optional[Iterable[Tuple[str, str]]] = None,
    post_transforms: Optional[Iterable[Tuple[str, str]]] = None,
    quits: Optional[Iterable[str]] = None,
    initials: Optional[Iterable[str]] = None,
    finals: Optional[Iterable[str]] = None,
) -> CompiledRuleSet:
    """
    Compile every table of a script into a shareable CompiledRuleSet.

    Raises:
        RuleCompileError: On unusable rule data
    """
    rule_set = CompiledRuleSet(
        keywords=compile_keywords(keywords, synonyms),
        pres=SubstitutionTable.from_pairs(pres or ()),
        posts=SubstitutionTable.from_pairs(posts or ()),
        post_transforms=compile_post_transforms(post_transforms),
        quits=frozenset(q.lower() for q in quits or ()),
        initials=tuple(initials or ()),
        finals=tuple(finals or ()),
    )
    logger.info(
        f"Compiled {len(rule_set.keywords)} keyword rules "
        f"({len(rule_set.pres)} pre / {len(rule_set.posts)} post substitutions)"
    )
    return rule_set


def compile_script(script: Script) -> CompiledRuleSet:
    """Compile a loaded Script."""
    return compile_rules(
        keywords=script.keywords,
        synonyms=script.synonyms,
        pres=script.pres,
        posts=script.posts,
        post_transforms=script.post_transforms,
        quits=script.quits,
        initials=script.initials,
        finals=script.finals,
    )

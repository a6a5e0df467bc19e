"""
Test Rule Compiler Module
========================

Unit tests for pattern translation, rule sorting and compile-time checks.
"""

import copy
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.exceptions import RuleCompileError, ScriptError
from eliza.compiler import (
    Literal, Redirect, compile_keywords, compile_rules, translate_pattern,
    build_synonym_patterns,
)


XNONE = ["xnone", 0, [["*", ["Please go on."]]]]


class TestTranslatePattern:
    """Tests for wildcard, synonym and memory-flag translation."""

    def test_wildcard_only(self):
        """A lone wildcard captures everything."""
        assert translate_pattern("*") == (r"\s*(.*)\s*", False)
        assert translate_pattern("  *  ") == (r"\s*(.*)\s*", False)

    def test_leading_and_trailing_wildcards(self):
        """Outer wildcards get word boundaries on their inner side."""
        source, save = translate_pattern("* i remember *")
        assert source == r"\s*(.*)\s*\bi\s+remember\b\s*(.*)\s*"
        assert save is False

    def test_internal_wildcard(self):
        """A wildcard between words is bounded on both sides."""
        source, _ = translate_pattern("a * b")
        assert source == r"a\b\s*(.*)\s*\bb"

    def test_chained_internal_wildcards(self):
        """Consecutive internal wildcards share the word between them."""
        source, _ = translate_pattern("a * b * c")
        assert source == r"a\b\s*(.*)\s*\bb\b\s*(.*)\s*\bc"

    def test_memory_flag(self):
        """A leading $ is stripped and sets the memory flag."""
        source, save = translate_pattern("$ * my *")
        assert source == r"\s*(.*)\s*\bmy\b\s*(.*)\s*"
        assert save is True

        source, save = translate_pattern("$* my *")
        assert save is True
        assert source == r"\s*(.*)\s*\bmy\b\s*(.*)\s*"

    def test_synonym_expansion(self):
        """@word expands into an alternation group."""
        synonyms = build_synonym_patterns({"belief": ["feel", "think"]})
        source, _ = translate_pattern("* i @belief *", synonyms)
        assert source == r"\s*(.*)\s*\bi\s+(belief|feel|think)\b\s*(.*)\s*"

    def test_unknown_synonym_keeps_word(self):
        """An unknown @reference becomes the bare word."""
        source, _ = translate_pattern("@nothing *", {})
        assert source == r"nothing\b\s*(.*)\s*"

    def test_no_boundary_before_group(self):
        """No word boundary is placed in front of an opening group."""
        synonyms = build_synonym_patterns({"family": ["mother"]})
        source, _ = translate_pattern("* my* @family *", synonyms)
        assert source == r"\s*(.*)\s*\bmy\b\s*(.*)\s*(family|mother)\b\s*(.*)\s*"

    def test_whitespace_collapses(self):
        """Literal whitespace runs match any amount of whitespace."""
        source, _ = translate_pattern("do   you")
        assert source == r"do\s+you"


class TestCompileKeywords:
    """Tests for keyword compilation and ordering."""

    def test_rank_ordering_is_stable(self):
        """Rules sort by rank descending, original order among equals."""
        keywords = compile_keywords([
            XNONE,
            ["alpha", 1, [["*", ["a"]]]],
            ["beta", 10, [["*", ["b"]]]],
            ["gamma", 1, [["*", ["c"]]]],
        ])
        assert [k.keyword for k in keywords] == ["beta", "alpha", "gamma", "xnone"]
        assert [k.original_index for k in keywords] == [2, 1, 3, 0]

    def test_decomposition_matches(self):
        """Compiled decompositions capture the wildcard text."""
        keywords = compile_keywords([XNONE, ["remember", 5, [["* i remember *", ["(2)"]]]]])
        decomposition = keywords[0].decompositions[0]

        match = decomposition.match("i remember my childhood")
        assert match is not None
        assert match.group(2) == "my childhood"

    def test_synonym_groups_count_as_captures(self):
        """Synonym alternations take part in group numbering."""
        keywords = compile_keywords(
            [XNONE, ["my", 2, [["* my* @family *", ["(3)"]]]]],
            {"family": ["mother", "father"]},
        )
        match = keywords[0].decompositions[0].match("my mother is kind")
        assert match.group(3) == "mother"
        assert match.group(4) == "is kind"

    def test_keyword_matcher_is_whole_word(self):
        """Keywords match whole words, case-insensitively."""
        keywords = compile_keywords([XNONE, ["dream", 3, [["*", ["x"]]]]])
        assert keywords[0].applies_to("i had a Dream")
        assert not keywords[0].applies_to("dreamer")

    def test_reassembly_kinds(self):
        """goto reassemblies become redirects with resolved indices."""
        keywords = compile_keywords([
            XNONE,
            ["sorry", 0, [["*", ["Please don't apologize."]]]],
            ["apologize", 0, [["*", ["goto sorry", "GOTO missing"]]]],
        ])
        sorry, apologize = keywords[1], keywords[2]

        assert sorry.decompositions[0].reassemblies == (Literal("Please don't apologize."),)
        assert apologize.decompositions[0].reassemblies == (
            Redirect("sorry", 1),
            Redirect("missing", None),
        )

    def test_inputs_are_not_modified(self):
        """Compiling twice from the same raw data gives the same result."""
        raw = [XNONE, ["my", 2, [["$ * my *", ["Earlier (2)."]]]]]
        pristine = copy.deepcopy(raw)

        first = compile_keywords(raw)
        second = compile_keywords(raw)

        assert raw == pristine
        assert [d.pattern.pattern for k in first for d in k.decompositions] == \
            [d.pattern.pattern for k in second for d in k.decompositions]
        assert first[0].decompositions[0].save_to_memory is True


class TestCompileErrors:
    """Tests for fail-fast rule validation."""

    def test_missing_fallback(self):
        """A rule set without xnone is rejected."""
        with pytest.raises(RuleCompileError):
            compile_keywords([["hello", 0, [["*", ["Hi."]]]]])

    def test_duplicate_fallback(self):
        """Only one xnone rule is allowed."""
        with pytest.raises(RuleCompileError):
            compile_keywords([XNONE, XNONE])

    def test_fallback_rank(self):
        """The xnone rule must have rank 0."""
        with pytest.raises(RuleCompileError):
            compile_keywords([["xnone", 3, [["*", ["?"]]]]])

    def test_invalid_pattern(self):
        """An unbalanced pattern is a compile error naming the rule."""
        with pytest.raises(RuleCompileError) as exc_info:
            compile_keywords([XNONE, ["broken", 1, [["* (unclosed *", ["x"]]]]])
        assert exc_info.value.details["keyword"] == "broken"

    def test_invalid_keyword(self):
        """A keyword that is not a valid expression is rejected."""
        with pytest.raises(RuleCompileError):
            compile_keywords([XNONE, ["(oops", 1, [["*", ["x"]]]]])

    def test_empty_reassemblies(self):
        """Every decomposition needs at least one reassembly."""
        with pytest.raises(RuleCompileError):
            compile_keywords([XNONE, ["empty", 1, [["*", []]]]])

    def test_goto_cycle(self):
        """Redirections that loop are rejected."""
        with pytest.raises(RuleCompileError) as exc_info:
            compile_keywords([
                XNONE,
                ["ping", 1, [["*", ["goto pong"]]]],
                ["pong", 1, [["*", ["goto ping"]]]],
            ])
        assert "ping" in exc_info.value.details["cycle"]

    def test_goto_self(self):
        """A rule redirecting to itself is a cycle."""
        with pytest.raises(RuleCompileError):
            compile_keywords([XNONE, ["loop", 1, [["*", ["goto loop"]]]]])

    def test_malformed_entry(self):
        """Entries that are not [keyword, rank, decompositions] are rejected."""
        with pytest.raises(ScriptError):
            compile_keywords([XNONE, ["lonely"]])

    def test_rank_type(self):
        """Ranks must be integers."""
        with pytest.raises(ScriptError):
            compile_keywords([XNONE, ["word", "high", [["*", ["x"]]]]])


class TestCompileRules:
    """Tests for the full rule set."""

    def test_tables(self):
        """Substitution tables, quits and messages are compiled."""
        rules = compile_rules(
            [XNONE],
            pres=[("dont", "don't")],
            posts=[("my", "your")],
            quits=["Bye"],
            initials=["Hello."],
            finals=["Goodbye."],
        )
        assert rules.pres.apply("i dont know") == "i don't know"
        assert rules.posts.apply("my book") == "your book"
        assert rules.quits == frozenset({"bye"})
        assert rules.initials == ("Hello.",)
        assert rules.finals == ("Goodbye.",)
        assert rules.fallback_index == 0

    def test_empty_tables_never_match(self):
        """Empty substitution tables leave text untouched."""
        rules = compile_rules([XNONE])
        assert rules.pres.apply("####") == "####"
        assert rules.posts.apply("my book") == "my book"
        assert len(rules.pres) == 0

    def test_invalid_post_transform(self):
        """Broken post-transforms fail at compile time."""
        with pytest.raises(RuleCompileError):
            compile_rules([XNONE], post_transforms=[("(open", "x")])

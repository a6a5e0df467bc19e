"""
Test Response Engine Module
==========================

Unit tests for keyword dispatch, reassembly, memory and session control.
"""

import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import EngineConfig
from core.exceptions import ConfigError
from eliza.compiler import compile_rules, compile_script
from eliza.engine import ElizaEngine, LOSS_FOR_WORDS, split_sentences
from eliza.random_source import SeededRandom
from eliza.script import default_script


XNONE = ["xnone", 0, [["*", ["Fallback."]]]]


def always_zero():
    return 0.0


@pytest.fixture(scope="module")
def doctor_rules():
    """Compiled bundled script, shared by every engine in this module."""
    return compile_script(default_script())


@pytest.fixture
def doctor(doctor_rules):
    return ElizaEngine(doctor_rules, always_zero)


class TestSplitSentences:
    """Tests for input normalization."""

    def test_breaks(self):
        """Punctuation, dashes and 'but' separate fragments."""
        parts = split_sentences("Hello, how are you? I am fine - thanks but no")
        assert parts == ["hello", "how are you", "i am fine", "thanks", "no"]

    def test_but_inside_word(self):
        """'but' only breaks as a whole word."""
        assert split_sentences("pass the butter") == ["pass the butter"]

    def test_symbols_become_spaces(self):
        """Symbol characters are blanked and spaces collapsed."""
        assert split_sentences("my (old) car") == ["my old car"]

    def test_empty_input(self):
        """Empty or punctuation-only input yields no fragments."""
        assert split_sentences("") == []
        assert split_sentences("?!...") == []


class TestTransform:
    """Tests for reply production."""

    def test_capture_group_reply(self):
        """Captured text is spliced into the template."""
        rules = compile_rules([
            XNONE,
            ["remember", 5, [["* i remember *", ["Why do you remember (2) ?"]]]],
        ])
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("I remember my childhood") == "Why do you remember my childhood ?"

    def test_pre_substitution(self):
        """Input is rewritten before keywords are scanned."""
        rules = compile_rules(
            [XNONE, ["don't", 3, [["* don't *", ["Why don't you (2) ?"]]]]],
            pres=[("dont", "don't")],
        )
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("I dont know") == "Why don't you know ?"

    def test_post_substitution(self):
        """Captured text is person-swapped before splicing."""
        rules = compile_rules(
            [XNONE, ["book", 1, [["*", ["(1)"]]]]],
            posts=[("my", "your")],
        )
        engine = ElizaEngine(rules, always_zero, EngineConfig(capitalize_first_letter=False))

        assert engine.transform("my book") == "your book"

    def test_capitalization(self):
        """The first letter of a reply is uppercased by default."""
        rules = compile_rules([XNONE, ["book", 1, [["*", ["(1)"]]]]])
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("my book") == "My book"

    def test_rank_precedence(self):
        """The higher ranked keyword answers when both are present."""
        rules = compile_rules([
            XNONE,
            ["low", 1, [["*", ["Low reply."]]]],
            ["high", 10, [["*", ["High reply."]]]],
        ])
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("low and high") == "High reply."

    def test_no_immediate_repeat(self):
        """A decomposition never gives the same reassembly twice in a row."""
        rules = compile_rules([XNONE, ["ping", 1, [["*", ["first", "second"]]]]])
        engine = ElizaEngine(rules, always_zero)

        replies = [engine.transform("ping") for _ in range(4)]
        assert replies == ["First", "Second", "First", "Second"]

    def test_out_of_range_group(self):
        """Missing capture groups become empty text."""
        rules = compile_rules([XNONE, ["echo", 1, [["*", ["You said (5) ok."]]]]])
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("echo") == "You said ok."

    def test_goto(self):
        """goto runs the target keyword's rule."""
        rules = compile_rules([
            XNONE,
            ["sorry", 0, [["*", ["Please don't apologize."]]]],
            ["apologize", 0, [["*", ["goto sorry"]]]],
        ])
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("I apologize") == "Please don't apologize."

    def test_goto_unknown_target_falls_through(self):
        """A goto to a missing keyword produces no reply from that path."""
        rules = compile_rules([XNONE, ["why", 0, [["*", ["goto what"]]]]])
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("why") == "Fallback."

    def test_goto_depth_limit(self):
        """Redirect chains longer than the limit are abandoned."""
        keywords = [
            XNONE,
            ["a", 1, [["*", ["goto b"]]]],
            ["b", 1, [["*", ["goto c"]]]],
            ["c", 1, [["*", ["Reached c."]]]],
        ]
        rules = compile_rules(keywords)

        assert ElizaEngine(rules, always_zero).transform("a") == "Reached c."
        limited = ElizaEngine(rules, always_zero, EngineConfig(max_goto_depth=1))
        assert limited.transform("a") == "Fallback."

    def test_later_fragment_matches(self):
        """Fragments are scanned in order until one produces a reply."""
        rules = compile_rules([XNONE, ["dog", 1, [["*", ["Tell me about your dog."]]]]])
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("Nothing here. My dog barks") == "Tell me about your dog."

    def test_fallback_totality(self, doctor):
        """Any input yields some reply."""
        inputs = ["", "   ", "!!!", "---", "(((", "but but", "\n\t", "word " * 1000, "my " * 200]
        for text in inputs:
            reply = doctor.transform(text)
            assert isinstance(reply, str)
            assert reply

    def test_loss_for_words(self):
        """With a fallback that cannot match, the fixed reply is used."""
        rules = compile_rules([["xnone", 0, [["never", ["unused"]]]]])
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("anything") == LOSS_FOR_WORDS

    def test_doctor_remember(self, doctor):
        """Bundled script swaps persons in captured text."""
        assert doctor.transform("I remember my childhood") == "Do you often think of your childhood ?"

    def test_doctor_synonyms(self, doctor):
        """Bundled script matches through pre-substitution and synonyms."""
        assert doctor.transform("I'm sad") == "I am sorry to hear that you are sad."


class TestMemory:
    """Tests for deferred replies."""

    @pytest.fixture
    def rules(self):
        return compile_rules([
            XNONE,
            ["my", 2, [
                ["$ * my *", ["Earlier you mentioned your (2)."]],
                ["* my *", ["Your (2) ?"]],
            ]],
        ])

    def test_saved_reply_is_used_later(self, rules):
        """Memory-flagged replies come back when nothing matches."""
        engine = ElizaEngine(rules, always_zero)

        assert engine.transform("my dog is sick") == "Your dog is sick ?"
        assert engine.memory == ["Earlier you mentioned your dog is sick."]

        assert engine.transform("xyzzy") == "Earlier you mentioned your dog is sick."
        assert engine.memory == []
        assert engine.transform("xyzzy") == "Fallback."

    def test_memory_bound(self, rules):
        """Memory keeps only the newest mem_size replies."""
        engine = ElizaEngine(rules, always_zero, EngineConfig(mem_size=2))

        for word in ("a", "b", "c"):
            engine.transform(f"my {word}")

        assert engine.memory == [
            "Earlier you mentioned your b.",
            "Earlier you mentioned your c.",
        ]

    def test_doctor_memory(self, doctor):
        """The bundled 'my' rule stores a reply and answers from the next decomposition."""
        assert doctor.transform("My mother is kind") == "Tell me more about your family."
        assert doctor.memory == ["Does that have anything to do with the fact that your mother is kind ?"]


class TestSession:
    """Tests for quit, reset, greetings and determinism."""

    def test_quit(self, doctor, doctor_rules):
        """Quit phrases end the conversation with a farewell."""
        doctor.transform("My mother is kind")
        for phrase in doctor_rules.quits:
            reply = doctor.transform(phrase)
            assert doctor.quit is True
            assert reply in doctor_rules.finals

        doctor.transform("hello")
        assert doctor.quit is False

    def test_quit_with_punctuation(self, doctor):
        """Quit phrases are recognized as whole fragments."""
        doctor.transform("Bye!")
        assert doctor.quit is True

        doctor.transform("bye bye")
        assert doctor.quit is False

    def test_reset(self, doctor, doctor_rules):
        """reset clears session state and keeps the rules."""
        doctor.transform("My mother is kind")
        doctor.transform("bye")

        doctor.reset()

        assert doctor.memory == []
        assert doctor.quit is False
        assert set(doctor.session.last_choice.values()) == {-1}
        assert doctor.rules is doctor_rules

    def test_initial_and_final(self, doctor, doctor_rules):
        """Greetings and farewells come from the script."""
        assert doctor.get_initial() in doctor_rules.initials
        assert doctor.get_final() in doctor_rules.finals

    def test_empty_messages(self):
        """Scripts without greetings return empty strings."""
        engine = ElizaEngine(compile_rules([XNONE]), always_zero)
        assert engine.get_initial() == ""
        assert engine.get_final() == ""

    def test_determinism(self, doctor_rules):
        """Same seed, same calls, same conversation."""
        script = [
            "Hello", "I remember my childhood", "My mother is kind",
            "I'm sad", "why don't you help me", "nothing", "nothing", "bye",
        ]

        def run():
            engine = ElizaEngine(doctor_rules, SeededRandom(1234))
            replies = [engine.get_initial()]
            replies.extend(engine.transform(line) for line in script)
            replies.append(engine.get_final())
            return replies

        assert run() == run()

    def test_shared_rules(self, doctor_rules):
        """Engines sharing a rule set keep separate sessions."""
        first = ElizaEngine(doctor_rules, always_zero)
        second = ElizaEngine(doctor_rules, always_zero)

        first.transform("My mother is kind")

        assert len(first.memory) == 1
        assert second.memory == []

    def test_seeded_greetings(self, doctor_rules):
        """The default seed gives fixed greeting and farewell picks."""
        engine = ElizaEngine(doctor_rules, SeededRandom(1234))

        assert engine.get_initial() == "Is something troubling you ?"
        assert engine.get_final() == "Goodbye.  This was really a nice talk."

    def test_set_seed_restarts_conversation(self, doctor_rules):
        """set_seed rewinds the random sequence and clears the session."""
        engine = ElizaEngine(doctor_rules, SeededRandom(99))
        first = [engine.get_initial(), engine.transform("My mother is kind"), engine.transform("xyzzy")]

        engine.transform("My father is tall")
        engine.transform("bye")
        engine.set_seed(99)

        assert engine.memory == []
        assert engine.quit is False
        assert [engine.get_initial(), engine.transform("My mother is kind"), engine.transform("xyzzy")] == first

    def test_set_seed_default(self, doctor_rules):
        """A missing seed selects the default sequence."""
        engine = ElizaEngine(doctor_rules, SeededRandom(5))
        engine.set_seed()
        assert engine.get_initial() == "Is something troubling you ?"

    def test_set_seed_needs_seedable_source(self, doctor):
        with pytest.raises(ConfigError):
            doctor.set_seed(1)

    def test_from_script(self):
        """An engine can be built straight from a loaded script."""
        engine = ElizaEngine.from_script(default_script(), always_zero, EngineConfig(mem_size=1))

        assert engine.config.mem_size == 1
        assert engine.rules.fallback_index is not None
        assert engine.transform("I remember my childhood") == "Do you often think of your childhood ?"

    def test_random_source_required(self, doctor_rules):
        """An engine cannot be built without a random source."""
        with pytest.raises(ConfigError):
            ElizaEngine(doctor_rules, None)

    def test_invalid_config(self, doctor_rules):
        """Invalid engine options are rejected."""
        with pytest.raises(ConfigError):
            ElizaEngine(doctor_rules, always_zero, EngineConfig(mem_size=-1))

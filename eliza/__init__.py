"""
Eliza Module - Rule-based conversational response engine
========================================================

This module provides an ELIZA-style reply engine:
- Rule compilation (wildcards, synonyms, memory flags)
- Ranked keyword dispatch with non-repeating reply selection
- Person swapping through pre/post substitution tables
- A bounded memory of deferred replies
- Reproducible conversations from a seeded random source
"""

__version__ = "1.1.0"

from .compiler import (
    CompiledRuleSet,
    CompiledKeyword,
    CompiledDecomposition,
    Literal,
    Redirect,
    compile_keywords,
    compile_rules,
    compile_script,
    translate_pattern,
)
from .engine import ElizaEngine, split_sentences
from .memory import MemoryQueue
from .random_source import SeededRandom
from .script import Script, KeywordRule, Decomposition, load_script, default_script
from .session import SessionState
from .substitutions import SubstitutionTable, PostTransform, post_transform

__all__ = [
    "CompiledRuleSet",
    "CompiledKeyword",
    "CompiledDecomposition",
    "Literal",
    "Redirect",
    "compile_keywords",
    "compile_rules",
    "compile_script",
    "translate_pattern",
    "ElizaEngine",
    "split_sentences",
    "MemoryQueue",
    "SeededRandom",
    "Script",
    "KeywordRule",
    "Decomposition",
    "load_script",
    "default_script",
    "SessionState",
    "SubstitutionTable",
    "PostTransform",
    "post_transform",
]

"""
Rule Script - Loading the data tables that drive a conversation
===============================================================

A script bundles every table the engine needs: keyword rules, synonyms,
pre/post substitutions, cosmetic post-transforms, quit phrases, greetings
and farewells. Scripts are stored as YAML; keyword rules are also accepted
in the canonical nested-list form::

    ["remember", 5, [["* i remember *", ["Why do you remember (2) ?"]]]]
"""

import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from core.exceptions import ScriptError
from core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SCRIPT_PATH = Path(__file__).parent / "data" / "doctor.yaml"


@dataclass
class Decomposition:
    """
    One decomposition pattern with its reply templates.

    Attributes:
        pattern (str): Source pattern, e.g. ``"$ * my *"``
        reassemblies (list): Reply templates or ``"goto <keyword>"``
    """
    pattern: str
    reassemblies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"pattern": self.pattern, "reassemblies": list(self.reassemblies)}


@dataclass
class KeywordRule:
    """
    A keyword with its rank and ordered decompositions.

    Attributes:
        keyword (str): Word (or regex fragment) that makes the rule applicable
        rank (int): Scan priority, higher first
        decompositions (list): Decompositions tried in order
    """
    keyword: str
    rank: int = 0
    decompositions: List[Decomposition] = field(default_factory=list)

    @classmethod
    def from_raw(cls, entry: Sequence[Any]) -> "KeywordRule":
        """
        Create a rule from ``[keyword, rank, [[pattern, [reassembly, ...]], ...]]``.

        Raises:
            ScriptError: If the entry does not have that shape
        """
        try:
            keyword, rank, decomps = entry[0], entry[1], entry[2]
            decompositions = [
                Decomposition(pattern=d[0], reassemblies=list(d[1])) for d in decomps
            ]
        except (IndexError, TypeError, KeyError) as e:
            raise ScriptError(f"Malformed keyword entry: {e}", {"entry": repr(entry)})

        rule = cls(keyword=keyword, rank=rank, decompositions=decompositions)
        rule.validate()
        return rule

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeywordRule":
        """Create a rule from its YAML mapping form."""
        if not isinstance(data, dict) or "keyword" not in data:
            raise ScriptError("Keyword rule must be a mapping with a 'keyword'", {"entry": repr(data)})

        decompositions = []
        for d in data.get("decompositions") or []:
            if not isinstance(d, dict) or "pattern" not in d:
                raise ScriptError(
                    "Decomposition must be a mapping with a 'pattern'",
                    {"keyword": data["keyword"], "entry": repr(d)},
                )
            decompositions.append(
                Decomposition(pattern=d["pattern"], reassemblies=list(d.get("reassemblies") or []))
            )

        rule = cls(keyword=data["keyword"], rank=data.get("rank", 0), decompositions=decompositions)
        rule.validate()
        return rule

    def validate(self) -> None:
        """Check field types; patterns themselves are checked by the compiler."""
        if not isinstance(self.keyword, str) or not self.keyword:
            raise ScriptError(f"Keyword must be a non-empty string, got {self.keyword!r}")
        if isinstance(self.rank, bool) or not isinstance(self.rank, int):
            raise ScriptError(f"Rank must be an integer, got {self.rank!r}", {"keyword": self.keyword})
        for d in self.decompositions:
            if not isinstance(d.pattern, str):
                raise ScriptError("Pattern must be a string", {"keyword": self.keyword, "pattern": repr(d.pattern)})
            if not all(isinstance(r, str) for r in d.reassemblies):
                raise ScriptError("Reassemblies must be strings", {"keyword": self.keyword, "pattern": d.pattern})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "rank": self.rank,
            "decompositions": [d.to_dict() for d in self.decompositions],
        }


RawKeyword = Union[KeywordRule, Dict[str, Any], Sequence[Any]]


def coerce_keyword_rule(entry: RawKeyword) -> KeywordRule:
    """Accept a KeywordRule, its mapping form, or the canonical list form."""
    if isinstance(entry, KeywordRule):
        return entry
    if isinstance(entry, dict):
        return KeywordRule.from_dict(entry)
    return KeywordRule.from_raw(entry)


@dataclass
class Script:
    """
    All data tables of one conversational script.

    ``pres`` and ``posts`` are ordered (source, replacement) pairs and
    ``post_transforms`` ordered (pattern, replacement) pairs.
    """
    keywords: List[KeywordRule] = field(default_factory=list)
    synonyms: Dict[str, List[str]] = field(default_factory=dict)
    pres: List[Tuple[str, str]] = field(default_factory=list)
    posts: List[Tuple[str, str]] = field(default_factory=list)
    post_transforms: List[Tuple[str, str]] = field(default_factory=list)
    quits: List[str] = field(default_factory=list)
    initials: List[str] = field(default_factory=list)
    finals: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Script":
        """
        Build a script from its YAML mapping form.

        Raises:
            ScriptError: If a section has the wrong type
        """
        if not isinstance(data, dict):
            raise ScriptError("Script must be a mapping")

        keywords = data.get("keywords") or []
        if not isinstance(keywords, list):
            raise ScriptError("'keywords' must be a list")

        synonyms = data.get("synonyms") or {}
        if not isinstance(synonyms, dict):
            raise ScriptError("'synonyms' must be a mapping")

        return cls(
            keywords=[coerce_keyword_rule(k) for k in keywords],
            synonyms={str(k): [str(w) for w in v or []] for k, v in synonyms.items()},
            pres=_pairs(data.get("pres"), "pres"),
            posts=_pairs(data.get("posts"), "posts"),
            post_transforms=_transform_pairs(data.get("post_transforms")),
            quits=_strings(data.get("quits"), "quits"),
            initials=_strings(data.get("initials"), "initials"),
            finals=_strings(data.get("finals"), "finals"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initials": list(self.initials),
            "finals": list(self.finals),
            "quits": list(self.quits),
            "pres": dict(self.pres),
            "posts": dict(self.posts),
            "synonyms": {k: list(v) for k, v in self.synonyms.items()},
            "post_transforms": [
                {"pattern": p, "replacement": r} for p, r in self.post_transforms
            ],
            "keywords": [k.to_dict() for k in self.keywords],
        }


def _pairs(value: Any, section: str) -> List[Tuple[str, str]]:
    """Ordered pairs from a mapping or a list of two-item lists."""
    if not value:
        return []
    if isinstance(value, dict):
        return [(str(k), str(v)) for k, v in value.items()]
    if isinstance(value, list) and all(isinstance(p, (list, tuple)) and len(p) == 2 for p in value):
        return [(str(k), str(v)) for k, v in value]
    raise ScriptError(f"'{section}' must be a mapping or a list of pairs")


def _transform_pairs(value: Any) -> List[Tuple[str, str]]:
    if not value:
        return []
    if not isinstance(value, list):
        raise ScriptError("'post_transforms' must be a list")

    pairs = []
    for item in value:
        if isinstance(item, dict) and "pattern" in item:
            pairs.append((str(item["pattern"]), str(item.get("replacement", ""))))
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            pairs.append((str(item[0]), str(item[1])))
        else:
            raise ScriptError("Invalid post-transform entry", {"entry": repr(item)})
    return pairs


def _strings(value: Any, section: str) -> List[str]:
    if not value:
        return []
    if not isinstance(value, list):
        raise ScriptError(f"'{section}' must be a list")
    return [str(v) for v in value]


def load_script(path: Optional[Union[str, Path]] = None) -> Script:
    """
    Load a rule script from a YAML file.

    Args:
        path: Script path; the bundled doctor script when omitted

    Returns:
        Parsed Script

    Raises:
        ScriptError: If the file is missing, unreadable or malformed
    """
    script_path = Path(path).expanduser() if path else DEFAULT_SCRIPT_PATH

    if not script_path.is_file():
        raise ScriptError(f"Script file not found: {script_path}", {"path": str(script_path)})

    try:
        with open(script_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ScriptError(f"Failed to parse script: {e}", {"path": str(script_path)})
    except IOError as e:
        raise ScriptError(f"Failed to read script: {e}", {"path": str(script_path)})

    script = Script.from_dict(data)
    logger.debug(f"Loaded script {script_path.name} with {len(script.keywords)} keywords")
    return script


def default_script() -> Script:
    """Load the bundled doctor script."""
    return load_script(DEFAULT_SCRIPT_PATH)

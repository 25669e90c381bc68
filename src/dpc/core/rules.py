"""
Rule engine for project detection.

Decides, from a directory's name, its immediate entry names and the names of
its ancestors below the scan root, whether the directory is a project, must be
pruned, or is a plain directory to descend into. No filesystem access happens
here; callers pass pre-listed entries.
"""

import fnmatch
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence


class ConfigurationError(ValueError):
    """Raised when a rule pattern, scan root or config value is invalid."""
    pass


class Hint(str, Enum):
    """Marker kinds recorded for a cataloged project."""

    GIT = "git"
    PACKAGE_JSON = "package_json"
    GEMFILE = "gemfile"
    GEMSPEC = "gemspec"
    CARGO = "cargo"
    PYPROJECT = "pyproject"
    REQUIREMENTS = "requirements"
    GO_MOD = "go_mod"
    POM = "pom"
    DEVENV = "devenv"
    CUSTOM = "custom"


# Built-in indicator patterns and the hint each one records
BUILTIN_INDICATOR_HINTS: dict[str, Hint] = {
    ".git": Hint.GIT,
    "package.json": Hint.PACKAGE_JSON,
    "Gemfile": Hint.GEMFILE,
    "*.gemspec": Hint.GEMSPEC,
    "Cargo.toml": Hint.CARGO,
    "pyproject.toml": Hint.PYPROJECT,
    "requirements.txt": Hint.REQUIREMENTS,
    "go.mod": Hint.GO_MOD,
    "pom.xml": Hint.POM,
    "devenv.nix": Hint.DEVENV,
}

DEFAULT_INDICATORS: list[str] = list(BUILTIN_INDICATOR_HINTS)

DEFAULT_EXCLUSIONS: list[str] = [
    "node_modules",
    "vendor",
    ".git",
    "__pycache__",
    "target",
    "build",
    "dist",
    ".venv",
    "venv",
    ".tox",
]

DEFAULT_MAX_DEPTH = 10

_GLOB_CHARS = frozenset("*?[")


class PatternKind(str, Enum):
    EXACT = "exact"
    SUFFIX = "suffix"
    GLOB = "glob"


@dataclass(frozen=True)
class Pattern:
    """A single name pattern: exact name, filename suffix, or glob."""

    raw: str
    kind: PatternKind
    case_sensitive: bool = True

    @classmethod
    def parse(cls, raw: str, case_sensitive: bool = True) -> "Pattern":
        """
        Parse a pattern string.

        `*<literal>` without further wildcards is a suffix pattern; anything
        else containing `*`, `?` or `[` is a glob; the rest are exact names.

        Raises:
            ConfigurationError: If the pattern is empty, contains a path
                separator, or is a glob that does not compile.
        """
        if not isinstance(raw, str) or not raw.strip():
            raise ConfigurationError(f"Pattern cannot be empty or whitespace-only: {raw!r}")
        if "/" in raw or "\\" in raw:
            raise ConfigurationError(
                f"Pattern must be a single name, not a path: {raw!r}"
            )

        if raw.startswith("*") and len(raw) > 1 and not (_GLOB_CHARS & set(raw[1:])):
            return cls(raw=raw, kind=PatternKind.SUFFIX, case_sensitive=case_sensitive)

        if _GLOB_CHARS & set(raw):
            try:
                re.compile(fnmatch.translate(raw))
            except re.error as e:
                raise ConfigurationError(f"Invalid glob pattern {raw!r}: {e}") from e
            return cls(raw=raw, kind=PatternKind.GLOB, case_sensitive=case_sensitive)

        return cls(raw=raw, kind=PatternKind.EXACT, case_sensitive=case_sensitive)

    def matches(self, name: str) -> bool:
        """Check a single entry or directory name against this pattern."""
        pattern = self.raw
        if not self.case_sensitive:
            pattern = pattern.lower()
            name = name.lower()

        if self.kind is PatternKind.EXACT:
            return name == pattern
        if self.kind is PatternKind.SUFFIX:
            suffix = pattern[1:]
            return len(name) > len(suffix) and name.endswith(suffix)
        return fnmatch.fnmatchcase(name, pattern)


@dataclass(frozen=True)
class Indicator:
    """An indicator pattern and the hint recorded when it matches."""

    pattern: Pattern
    hint: Hint


def _dedupe(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


@dataclass(frozen=True)
class RuleConfiguration:
    """
    Validated indicator/exclusion rules plus traversal limits.

    Attributes:
        indicators: Ordered indicator patterns that qualify a directory as a project
        exclusions: Ordered directory-name patterns that prune a subtree
        max_depth: Maximum traversal depth from each root (root is depth 0)
        follow_symlinks: Whether symlinked directories are traversed
    """

    indicators: tuple[Indicator, ...]
    exclusions: tuple[Pattern, ...]
    max_depth: int = DEFAULT_MAX_DEPTH
    follow_symlinks: bool = False

    @classmethod
    def from_strings(
        cls,
        indicators: Sequence[str] | None = None,
        exclusions: Sequence[str] | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        case_sensitive: bool = True,
        follow_symlinks: bool = False,
    ) -> "RuleConfiguration":
        """
        Build a rule set from plain pattern strings.

        Raises:
            ConfigurationError: Naming the first invalid pattern or limit.
        """
        indicator_strings = DEFAULT_INDICATORS if indicators is None else indicators
        exclusion_strings = DEFAULT_EXCLUSIONS if exclusions is None else exclusions

        if isinstance(max_depth, bool) or not isinstance(max_depth, int):
            raise ConfigurationError(f"max_depth must be an integer, got {max_depth!r}")
        if max_depth < 0:
            raise ConfigurationError(f"max_depth cannot be negative: {max_depth}")
        if not indicator_strings:
            raise ConfigurationError("At least one indicator pattern is required")

        parsed_indicators = tuple(
            Indicator(
                pattern=Pattern.parse(raw, case_sensitive=case_sensitive),
                hint=BUILTIN_INDICATOR_HINTS.get(raw, Hint.CUSTOM),
            )
            for raw in _dedupe(indicator_strings)
        )
        parsed_exclusions = tuple(
            Pattern.parse(raw, case_sensitive=case_sensitive)
            for raw in _dedupe(exclusion_strings)
        )
        return cls(
            indicators=parsed_indicators,
            exclusions=parsed_exclusions,
            max_depth=max_depth,
            follow_symlinks=follow_symlinks,
        )

    def is_excluded_name(self, name: str) -> bool:
        return any(p.matches(name) for p in self.exclusions)


@dataclass(frozen=True)
class Classification:
    """Base class for classify() outcomes."""
    pass


@dataclass(frozen=True)
class Project(Classification):
    hints: frozenset[Hint] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Excluded(Classification):
    matched_name: str = ""


@dataclass(frozen=True)
class Plain(Classification):
    pass


PLAIN = Plain()


def excluding_name(
    directory_name: str,
    ancestor_names: Sequence[str],
    rules: RuleConfiguration,
) -> str | None:
    """Return the first of the directory or ancestor names hit by an exclusion."""
    for name in (directory_name, *ancestor_names):
        if name and rules.is_excluded_name(name):
            return name
    return None


def classify(
    directory_name: str,
    entry_names: Iterable[str],
    ancestor_names: Sequence[str],
    rules: RuleConfiguration,
) -> Classification:
    """
    Classify one directory.

    Args:
        directory_name: Name of the directory itself ("" for an exempt root)
        entry_names: Names of the entries directly inside the directory
        ancestor_names: Directory names strictly between the scan root and it
        rules: Validated rule configuration

    Returns:
        Excluded if the directory or any ancestor name matches an exclusion,
        Project with every matched hint if an indicator matches an entry,
        Plain otherwise.
    """
    excluded_by = excluding_name(directory_name, ancestor_names, rules)
    if excluded_by is not None:
        return Excluded(matched_name=excluded_by)

    hints: set[Hint] = set()
    names = list(entry_names)
    for indicator in rules.indicators:
        if indicator.hint in hints:
            continue
        if any(indicator.pattern.matches(n) for n in names):
            hints.add(indicator.hint)

    if hints:
        return Project(hints=frozenset(hints))
    return PLAIN

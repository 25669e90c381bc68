"""
Property-based tests for directory classification.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from dpc.core.rules import (
    BUILTIN_INDICATOR_HINTS,
    DEFAULT_EXCLUSIONS,
    Excluded,
    Hint,
    Plain,
    Project,
    RuleConfiguration,
    classify,
)

RULES = RuleConfiguration.from_strings()

# Directory and entry names mixing exclusions, indicators and ordinary names
name_pool = st.sampled_from(
    [
        "src",
        "app",
        "lib",
        "node_modules",
        "vendor",
        "target",
        ".git",
        "package.json",
        "Cargo.toml",
        "go.mod",
        "demo.gemspec",
        "README.md",
        "setup.cfg",
    ]
)


def expected_hints(entries: list[str]) -> set[Hint]:
    hints = {BUILTIN_INDICATOR_HINTS[n] for n in entries if n in BUILTIN_INDICATOR_HINTS}
    if any(n.endswith(".gemspec") for n in entries):
        hints.add(Hint.GEMSPEC)
    return hints


@given(
    directory=name_pool,
    ancestors=st.lists(name_pool, max_size=4),
    entries=st.lists(name_pool, max_size=8),
)
@settings(max_examples=200)
def test_exclusion_wins_over_indicators(directory, ancestors, entries):
    """
    A directory is excluded exactly when it or an ancestor carries an
    excluded name, whatever indicators it contains.
    """
    result = classify(directory, entries, ancestors, RULES)

    should_exclude = any(n in DEFAULT_EXCLUSIONS for n in [directory, *ancestors])
    assert isinstance(result, Excluded) == should_exclude


@given(entries=st.lists(name_pool, max_size=8))
@settings(max_examples=200)
def test_hints_are_exactly_the_matched_indicators(entries):
    """
    For a non-excluded directory, the hints are exactly those whose indicator
    matched an entry; no indicators means a plain directory.
    """
    result = classify("work", entries, ("home",), RULES)

    hints = expected_hints(entries)
    if hints:
        assert isinstance(result, Project)
        assert result.hints == hints
    else:
        assert isinstance(result, Plain)


@given(entries=st.lists(name_pool, max_size=8))
@settings(max_examples=100)
def test_root_is_never_excluded(entries):
    """An exempt root (empty name, no ancestors) is never excluded."""
    result = classify("", entries, (), RULES)

    assert not isinstance(result, Excluded)


@given(entries=st.lists(name_pool, max_size=8), order=st.randoms())
@settings(max_examples=100)
def test_entry_order_does_not_matter(entries, order):
    """Classification depends on the set of entry names, not their order."""
    shuffled = list(entries)
    order.shuffle(shuffled)

    assert classify("work", entries, (), RULES) == classify("work", shuffled, (), RULES)

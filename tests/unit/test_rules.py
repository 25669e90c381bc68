"""
Unit tests for the rule engine: pattern parsing, rule validation and classify().
"""

import pytest

from dpc.core.rules import (
    PLAIN,
    ConfigurationError,
    Excluded,
    Hint,
    Pattern,
    PatternKind,
    Project,
    RuleConfiguration,
    classify,
)


@pytest.fixture
def rules():
    return RuleConfiguration.from_strings(
        indicators=["package.json", ".git", "*.gemspec"],
        exclusions=["node_modules", "build*"],
    )


class TestPatternParsing:
    """Pattern strings map to exact, suffix or glob kinds."""

    @pytest.mark.parametrize(
        "raw, kind",
        [
            ("package.json", PatternKind.EXACT),
            (".git", PatternKind.EXACT),
            ("*.gemspec", PatternKind.SUFFIX),
            ("*.csproj", PatternKind.SUFFIX),
            ("build*", PatternKind.GLOB),
            ("requirements-?.txt", PatternKind.GLOB),
            ("[Mm]akefile", PatternKind.GLOB),
            ("*.git*", PatternKind.GLOB),
            ("*", PatternKind.GLOB),
        ],
    )
    def test_kind(self, raw, kind):
        assert Pattern.parse(raw).kind is kind

    @pytest.mark.parametrize("raw", ["", "   ", "a/b", "src\\lib", "/abs"])
    def test_invalid_patterns_rejected(self, raw):
        with pytest.raises(ConfigurationError):
            Pattern.parse(raw)

    def test_error_names_offending_pattern(self):
        with pytest.raises(ConfigurationError, match="a/b"):
            Pattern.parse("a/b")


class TestPatternMatching:
    def test_exact(self):
        pattern = Pattern.parse("Gemfile")
        assert pattern.matches("Gemfile")
        assert not pattern.matches("Gemfile.lock")
        assert not pattern.matches("gemfile")

    def test_suffix_requires_a_stem(self):
        pattern = Pattern.parse("*.gemspec")
        assert pattern.matches("rails.gemspec")
        assert not pattern.matches(".gemspec")
        assert not pattern.matches("rails.gemspec.bak")

    def test_glob(self):
        pattern = Pattern.parse("[Mm]akefile")
        assert pattern.matches("Makefile")
        assert pattern.matches("makefile")
        assert not pattern.matches("GNUmakefile")

    def test_case_insensitive(self):
        pattern = Pattern.parse("Cargo.toml", case_sensitive=False)
        assert pattern.matches("cargo.TOML")


class TestRuleConfiguration:
    def test_defaults(self):
        rules = RuleConfiguration.from_strings()
        raws = [i.pattern.raw for i in rules.indicators]

        assert ".git" in raws and "package.json" in raws and "*.gemspec" in raws
        assert rules.is_excluded_name("node_modules")
        assert rules.max_depth == 10
        assert rules.follow_symlinks is False

    def test_builtin_and_custom_hints(self):
        rules = RuleConfiguration.from_strings(indicators=["Cargo.toml", "flake.nix"])
        hints = {i.pattern.raw: i.hint for i in rules.indicators}

        assert hints["Cargo.toml"] is Hint.CARGO
        assert hints["flake.nix"] is Hint.CUSTOM

    def test_duplicates_collapsed_in_order(self):
        rules = RuleConfiguration.from_strings(
            indicators=[".git", "go.mod", ".git"], exclusions=["dist", "dist"]
        )

        assert [i.pattern.raw for i in rules.indicators] == [".git", "go.mod"]
        assert [p.raw for p in rules.exclusions] == ["dist"]

    def test_negative_depth_rejected(self):
        with pytest.raises(ConfigurationError, match="max_depth"):
            RuleConfiguration.from_strings(max_depth=-1)

    def test_non_integer_depth_rejected(self):
        with pytest.raises(ConfigurationError):
            RuleConfiguration.from_strings(max_depth="3")

    def test_empty_indicators_rejected(self):
        with pytest.raises(ConfigurationError):
            RuleConfiguration.from_strings(indicators=[])

    def test_invalid_exclusion_rejected(self):
        with pytest.raises(ConfigurationError, match="cache/tmp"):
            RuleConfiguration.from_strings(exclusions=["cache/tmp"])


class TestClassify:
    def test_project_with_all_matching_hints(self, rules):
        result = classify("app", ["package.json", ".git", "README.md"], (), rules)

        assert result == Project(hints=frozenset({Hint.PACKAGE_JSON, Hint.GIT}))

    def test_suffix_indicator(self, rules):
        result = classify("gem", ["mygem.gemspec", "lib"], (), rules)

        assert result == Project(hints=frozenset({Hint.GEMSPEC}))

    def test_plain(self, rules):
        assert classify("docs", ["index.md"], (), rules) is PLAIN

    def test_excluded_by_own_name_beats_indicator(self, rules):
        result = classify("node_modules", ["package.json"], (), rules)

        assert isinstance(result, Excluded)
        assert result.matched_name == "node_modules"

    def test_excluded_by_ancestor(self, rules):
        result = classify("lib", ["package.json"], ("app", "node_modules"), rules)

        assert result == Excluded(matched_name="node_modules")

    def test_glob_exclusion(self, rules):
        assert isinstance(classify("build-output", [".git"], (), rules), Excluded)

    def test_exempt_root_name(self, rules):
        # Scan roots are classified with an empty name and no ancestors
        result = classify("", [".git"], (), rules)

        assert result == Project(hints=frozenset({Hint.GIT}))

    def test_accepts_any_iterable_of_entries(self, rules):
        result = classify("app", iter(["package.json"]), (), rules)

        assert isinstance(result, Project)

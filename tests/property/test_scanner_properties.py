"""
Property-based tests for the project scanner.

Random directory trees are built on disk, scanned, and compared against a
direct model of which directories should be reported.
"""

import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from dpc.core.project_scanner import ProjectScanner
from dpc.core.rules import BUILTIN_INDICATOR_HINTS, DEFAULT_EXCLUSIONS, RuleConfiguration
from tests.scanner_test_utils import CollectingSink, canonical, make_tree

DIR_NAMES = ["src", "app", "pkg", "node_modules", "target", ".git"]
FILE_NAMES = ["package.json", "Cargo.toml", "go.mod", "notes.txt"]

dir_path = st.lists(st.sampled_from(DIR_NAMES), min_size=1, max_size=3).map(tuple)

tree_strategy = st.tuples(
    st.lists(dir_path, max_size=8),
    st.lists(st.tuples(st.integers(min_value=0, max_value=8), st.sampled_from(FILE_NAMES)), max_size=10),
)


def all_directories(dirs):
    result = {()}
    for path in dirs:
        for i in range(1, len(path) + 1):
            result.add(path[:i])
    return result


def expected_projects(directories, files, max_depth):
    """Map each directory tuple that should be reported to its hints."""
    expected = {}
    for directory in directories:
        if len(directory) > max_depth:
            continue
        if any(name in DEFAULT_EXCLUSIONS for name in directory):
            continue
        entries = {d[-1] for d in directories if len(d) == len(directory) + 1 and d[:-1] == directory}
        entries |= files.get(directory, set())
        hints = {BUILTIN_INDICATOR_HINTS[n] for n in entries if n in BUILTIN_INDICATOR_HINTS}
        if hints:
            expected[directory] = hints
    return expected


@given(tree=tree_strategy, max_depth=st.integers(min_value=0, max_value=4), workers=st.integers(min_value=1, max_value=4))
@settings(max_examples=30, deadline=None)
def test_scan_matches_model(tree, max_depth, workers):
    """
    A scan reports exactly the non-excluded directories within max_depth
    that contain an indicator, each with the hints of its own entries.
    """
    dirs, file_specs = tree
    directories = all_directories(dirs)
    ordered = sorted(directories)
    files: dict[tuple, set] = {}
    for index, name in file_specs:
        directory = ordered[index % len(ordered)]
        files.setdefault(directory, set()).add(name)

    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "root"
        entries = ["/".join(d) + "/" for d in directories if d]
        entries += ["/".join((*d, name)) for d, names in files.items() for name in names]
        make_tree(root, entries)

        sink = CollectingSink()
        run = ProjectScanner(max_workers=workers).scan(
            [root], RuleConfiguration.from_strings(max_depth=max_depth), sink
        )

        expected = {
            canonical(root.joinpath(*d)): hints
            for d, hints in expected_projects(directories, files, max_depth).items()
        }
        assert sink.hints_by_path() == expected
        assert len(sink.discoveries) == len(expected)
        assert run.discovered_count == len(expected)
        assert not run.cancelled

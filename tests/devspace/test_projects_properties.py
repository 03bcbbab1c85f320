"""Property-based tests for workspace naming and path resolution.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import tempfile
from pathlib import Path

from hypothesis import given, settings, strategies as st

from src.devspace.cache.store import ConfigCache
from src.devspace.projects.registry import ProjectRegistry, workspace_name_for_branch


branch_names = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789-_./"),
    min_size=1,
    max_size=40,
)


@settings(max_examples=100)
@given(branch=branch_names)
def test_workspace_name_is_single_path_component(branch):
    try:
        name = workspace_name_for_branch(branch)
    except ValueError:
        assert branch.strip().replace("/", "_") in ("", ".", "..")
        return
    assert "/" not in name
    assert "\\" not in name
    assert name not in (".", "..")
    assert workspace_name_for_branch(branch) == name


@settings(max_examples=100, deadline=None)
@given(
    key=st.from_regex(r"[a-z][a-z0-9-]{0,15}", fullmatch=True),
    branch=st.from_regex(r"[a-z0-9]{1,10}(/[a-z0-9]{1,10}){0,2}", fullmatch=True),
)
def test_paths_are_deterministic_and_contained(key, branch):
    with tempfile.TemporaryDirectory() as tmp:
        config = Path(tmp) / "devspace.yaml"
        config.write_text(
            f"global:\n  src_dir: {tmp}/src\n"
            f"projects:\n  '{key}':\n    name: P\n    repo: git@github.com:acme/{key}.git\n"
            f"    sample_repo: git@github.com:acme/{key}-sample.git\n"
        )
        registry = ProjectRegistry(cache=ConfigCache(enabled=False), config_path=config)
        name = workspace_name_for_branch(branch)

        first = registry.resolve_workspace_paths(key, name)
        second = registry.resolve_workspace_paths(key, name)

        assert first == second
        assert first.workspace_dir.parent == first.base_dir
        assert first.source_path.parent == first.workspace_dir
        assert first.companion_path.parent == first.workspace_dir
        assert first.source_path != first.companion_path


def test_distinct_branches_with_separators_share_a_name():
    assert workspace_name_for_branch("a/b") == workspace_name_for_branch("a_b")

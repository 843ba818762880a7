"""
Tests for GitHub repository extraction from npm metadata.

Feature: repository resolution
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from npmstats.repository_url import (
    extract_github_repository,
    normalize_repository_url,
    parse_github_url,
)
from npmstats.types.github import RepositoryRef

segment_strategy = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_"),
    min_size=1,
    max_size=30,
)


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/lodash/lodash",
        "https://github.com/lodash/lodash.git",
        "git+https://github.com/lodash/lodash.git",
        "http://www.github.com/lodash/lodash/",
        "https://github.com/lodash/lodash/tree/main/packages",
        "https://github.com/lodash/lodash#readme",
        "git+ssh://git@github.com/lodash/lodash.git",
        "git@github.com:lodash/lodash.git",
        "git://github.com/lodash/lodash.git",
        "github.com/lodash/lodash",
        "github:lodash/lodash",
        "lodash/lodash",
    ],
)
def test_supported_shapes(url: str) -> None:
    assert parse_github_url(url) == RepositoryRef("lodash", "lodash")


@pytest.mark.parametrize(
    "url",
    [
        "",
        "https://gitlab.com/foo/bar",
        "https://bitbucket.org/foo/bar.git",
        "gitlab:foo/bar",
        "https://github.com/onlyowner",
        "not a url",
    ],
)
def test_rejected_shapes(url: str) -> None:
    assert parse_github_url(url) is None


def test_normalize() -> None:
    assert normalize_repository_url(" git+https://github.com/a/b.git#main ") == "https://github.com/a/b"


@given(owner=segment_strategy, repo=segment_strategy)
@settings(max_examples=100)
def test_https_url_round_trips(owner: str, repo: str) -> None:
    ref = parse_github_url(f"git+https://github.com/{owner}/{repo}.git")

    assert ref == RepositoryRef(owner, repo)
    assert parse_github_url(ref.url) == ref


class TestExtractGithubRepository:
    def test_object_field(self) -> None:
        metadata = {"repository": {"type": "git", "url": "git+https://github.com/sindresorhus/got.git"}}

        assert extract_github_repository(metadata) == RepositoryRef("sindresorhus", "got")

    def test_string_field(self) -> None:
        assert extract_github_repository({"repository": "github:chalk/chalk"}) == RepositoryRef("chalk", "chalk")

    @pytest.mark.parametrize(
        "metadata",
        [
            {},
            {"repository": None},
            {"repository": {"type": "git"}},
            {"repository": ["https://github.com/a/b"]},
            {"homepage": "https://github.com/a/b"},
        ],
    )
    def test_missing(self, metadata: dict) -> None:
        assert extract_github_repository(metadata) is None

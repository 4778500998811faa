import pytest

from api.features.embeddings.entity_types import (
    EntityType,
    entity_type_from_uri,
    normalize_entity_type,
)
from api.features.embeddings.exceptions import InvalidEntityTypeError


@pytest.mark.parametrize(
    "value, expected",
    [
        ("commit", EntityType.COMMIT),
        ("GitCommit", EntityType.COMMIT),
        ("  Issue ", EntityType.ISSUE),
        ("GithubIssue", EntityType.ISSUE),
        ("gitlab-issue", EntityType.ISSUE),
        ("PR", EntityType.PULL_REQUEST),
        ("pull request", EntityType.PULL_REQUEST),
        ("merge_request", EntityType.PULL_REQUEST),
        ("MR", EntityType.PULL_REQUEST),
        ("IssueComment", EntityType.COMMENT),
        ("pr-comment", EntityType.COMMENT),
    ],
)
def test_normalize_accepts_aliases(value, expected):
    assert normalize_entity_type(value) is expected


@pytest.mark.parametrize("value", [None, "", "   ", "wiki_page", "discussion"])
def test_normalize_rejects_unknown(value):
    with pytest.raises(InvalidEntityTypeError) as excinfo:
        normalize_entity_type(value)
    assert excinfo.value.details["supported"] == EntityType.values()


def test_normalize_memoizes_into_caller_cache():
    cache = {}

    normalize_entity_type("GithubPullRequest", cache)

    assert cache == {"GithubPullRequest": EntityType.PULL_REQUEST}


@pytest.mark.parametrize(
    "uri, expected",
    [
        ("https://github.com/acme/app/commit/9f1c2ab", EntityType.COMMIT),
        ("https://github.com/acme/app/issues/12", EntityType.ISSUE),
        ("https://github.com/acme/app/issues/12#issuecomment-991", EntityType.COMMENT),
        ("https://github.com/acme/app/pull/40", EntityType.PULL_REQUEST),
        ("https://gitlab.com/acme/app/-/merge_requests/5", EntityType.PULL_REQUEST),
        ("https://gitlab.com/acme/app/-/issues/8", EntityType.ISSUE),
    ],
)
def test_entity_type_from_uri(uri, expected):
    assert entity_type_from_uri(uri) is expected


def test_entity_type_from_uri_rejects_unrecognised_paths():
    with pytest.raises(InvalidEntityTypeError):
        entity_type_from_uri("https://github.com/acme/app/wiki/Home")

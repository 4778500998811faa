"""Entity type normalization for commits, issues, pull requests and comments."""
from enum import Enum
from typing import MutableMapping, Optional

from api.features.embeddings.exceptions import InvalidEntityTypeError


class EntityType(str, Enum):
    COMMIT = "commit"
    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    COMMENT = "comment"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


_ALIASES: dict[str, EntityType] = {
    "commit": EntityType.COMMIT,
    "gitcommit": EntityType.COMMIT,
    "git_commit": EntityType.COMMIT,
    "issue": EntityType.ISSUE,
    "githubissue": EntityType.ISSUE,
    "github_issue": EntityType.ISSUE,
    "gitlabissue": EntityType.ISSUE,
    "gitlab_issue": EntityType.ISSUE,
    "pull_request": EntityType.PULL_REQUEST,
    "pullrequest": EntityType.PULL_REQUEST,
    "pr": EntityType.PULL_REQUEST,
    "githubpullrequest": EntityType.PULL_REQUEST,
    "github_pull_request": EntityType.PULL_REQUEST,
    "merge_request": EntityType.PULL_REQUEST,
    "mergerequest": EntityType.PULL_REQUEST,
    "mr": EntityType.PULL_REQUEST,
    "gitlabmergerequest": EntityType.PULL_REQUEST,
    "gitlab_merge_request": EntityType.PULL_REQUEST,
    "comment": EntityType.COMMENT,
    "githubcomment": EntityType.COMMENT,
    "github_comment": EntityType.COMMENT,
    "issuecomment": EntityType.COMMENT,
    "issue_comment": EntityType.COMMENT,
    "prcomment": EntityType.COMMENT,
    "pr_comment": EntityType.COMMENT,
    "pullrequestcomment": EntityType.COMMENT,
    "pull_request_comment": EntityType.COMMENT,
}


def normalize_entity_type(
    value: Optional[str],
    cache: Optional[MutableMapping[str, EntityType]] = None,
) -> EntityType:
    """Map any accepted spelling (``GithubIssue``, ``pr``, ``merge_request``...) to an EntityType.

    ``cache`` is an optional caller-owned mapping used to memoize lookups; nothing is
    cached at module level.
    """
    if value is None or not value.strip():
        raise InvalidEntityTypeError(value, EntityType.values())

    if cache is not None and value in cache:
        return cache[value]

    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    entity_type = _ALIASES.get(key)
    if entity_type is None:
        raise InvalidEntityTypeError(value, EntityType.values())

    if cache is not None:
        cache[value] = entity_type
    return entity_type


def entity_type_from_uri(uri: str) -> EntityType:
    """Derive the entity type from a GitHub/GitLab URI."""
    if not uri:
        raise InvalidEntityTypeError(uri, EntityType.values())
    if "/commit/" in uri:
        return EntityType.COMMIT
    if "#issuecomment-" in uri:
        return EntityType.COMMENT
    if "/issues/" in uri and "#" not in uri:
        return EntityType.ISSUE
    if "/pull/" in uri:
        return EntityType.PULL_REQUEST
    if "/-/merge_requests/" in uri:
        return EntityType.PULL_REQUEST
    if "/-/issues/" in uri:
        return EntityType.ISSUE
    raise InvalidEntityTypeError(uri, EntityType.values())

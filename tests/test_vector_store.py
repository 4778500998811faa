import pytest
from sqlalchemy.exc import OperationalError

from api.features.embeddings.exceptions import StoreQueryFailure
from api.features.embeddings.models import EmbeddingBatchResult
from api.features.embeddings.vector_store import VectorStoreWriter, group_by_metric

ISSUE = "https://github.com/acme/app/issues/3"
COMMIT = "https://github.com/acme/app/commit/abc123"
WIKI = "https://github.com/acme/app/wiki/Home"


def batch(*uris, width=3):
    return EmbeddingBatchResult(
        embeddings={uri: [0.1 * (i + 1)] * width for i, uri in enumerate(uris)},
        character_lengths={uri: 40 + i for i, uri in enumerate(uris)},
        model_name="test-model",
        dimensions=width,
    )


def test_build_records_carries_versioning_metadata():
    writer = VectorStoreWriter()

    records, skipped = writer.build_records(
        batch(ISSUE, COMMIT),
        order_id=7,
        metric_type="clarity",
        ratings={ISSUE: 4.5},
        strategy="title-only",
    )

    assert skipped == []
    by_uri = {r.entity_uri: r for r in records}
    issue = by_uri[ISSUE]
    assert issue.entity_type == "issue"
    assert issue.order_id == 7
    assert issue.metric_type == "clarity"
    assert issue.rating_value == 4.5
    assert issue.strategy == "title-only"
    assert issue.dimensions == 3
    assert issue.model_name == "test-model"
    assert issue.character_length == 40
    assert by_uri[COMMIT].entity_type == "commit"
    assert by_uri[COMMIT].rating_value is None


def test_build_records_prefers_explicit_entity_type_and_skips_unknown():
    writer = VectorStoreWriter(default_strategy="text-based")

    records, skipped = writer.build_records(
        batch(WIKI, "urn:entity:42"),
        order_id=1,
        metric_type=None,
        entity_types={"urn:entity:42": "GithubPullRequest"},
    )

    assert skipped == [WIKI]
    assert [(r.entity_uri, r.entity_type, r.strategy) for r in records] == [
        ("urn:entity:42", "pull_request", "text-based")
    ]


async def test_store_replaces_only_the_same_order_and_metric(vector_store, db_session):
    writer = VectorStoreWriter()
    await writer.store_embeddings(batch(ISSUE, COMMIT), 1, "clarity", db_session=db_session)
    await writer.store_embeddings(batch(ISSUE), 1, "constructiveness", db_session=db_session)
    await writer.store_embeddings(batch(ISSUE), 2, "clarity", db_session=db_session)

    result = await writer.store_embeddings(batch(COMMIT), 1, "clarity", db_session=db_session)

    assert (result.deleted, result.stored) == (2, 1)
    scopes = sorted((r.order_id, r.metric_type, r.entity_uri) for r in vector_store.records)
    assert scopes == [
        (1, "clarity", COMMIT),
        (1, "constructiveness", ISSUE),
        (2, "clarity", ISSUE),
    ]
    assert db_session.commits == 4


async def test_store_without_metric_replaces_whole_order(vector_store, db_session):
    writer = VectorStoreWriter()
    await writer.store_embeddings(batch(ISSUE), 1, "clarity", db_session=db_session)
    await writer.store_embeddings(batch(ISSUE), 1, "constructiveness", db_session=db_session)

    result = await writer.store_embeddings(batch(COMMIT), 1, None, db_session=db_session)

    assert result.deleted == 2
    assert [r.entity_uri for r in vector_store.records] == [COMMIT]


async def test_store_failure_rolls_back(vector_store, db_session, monkeypatch):
    async def broken(order_id, metric_type, entities):
        raise OperationalError("INSERT", {}, Exception("connection reset"))

    monkeypatch.setattr(vector_store, "replace_scope", broken)
    writer = VectorStoreWriter()

    with pytest.raises(StoreQueryFailure):
        await writer.store_embeddings(batch(ISSUE), 1, "clarity", db_session=db_session)
    assert db_session.rollbacks == 1
    assert db_session.commits == 0


async def test_clear_order_and_clear_all(vector_store, db_session):
    writer = VectorStoreWriter()
    await writer.store_embeddings(batch(ISSUE, COMMIT), 1, "clarity", db_session=db_session)
    await writer.store_embeddings(batch(ISSUE), 2, "clarity", db_session=db_session)

    assert await writer.clear_order(1, db_session=db_session) == 2
    assert [r.order_id for r in vector_store.records] == [2]
    assert await writer.clear_all(db_session=db_session) == 1
    assert vector_store.records == []


def test_group_by_metric_inverts_ratings():
    grouped = group_by_metric(
        {
            ISSUE: {"clarity": 4.0, "tone": 2.0},
            COMMIT: {"clarity": 3.0},
            WIKI: {},
        }
    )

    assert grouped == {
        "clarity": {ISSUE: 4.0, COMMIT: 3.0},
        "tone": {ISSUE: 2.0},
        "general": {WIKI: None},
    }


def test_group_by_metric_applies_filter():
    grouped = group_by_metric(
        {ISSUE: {"clarity": 4.0, "tone": 2.0}, WIKI: {}},
        metric_filter=["tone"],
    )

    assert grouped == {"tone": {ISSUE: 2.0}}

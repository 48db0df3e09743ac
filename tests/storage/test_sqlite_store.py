"""
Tests for the SQLite message store.
"""

from datetime import timedelta, timezone

import pytest

from threadmine.errors import PersistenceError
from threadmine.models.classification import Classification, ClassificationType, Enrichment
from threadmine.models.message import Channel, CodeBlock, SourceType, User
from threadmine.storage import MessageQuery, MessageStore


@pytest.fixture
def store():
    db = MessageStore(":memory:")
    yield db
    db.close()


@pytest.fixture
def thread(make_message):
    return [
        make_message("root", "How do I deploy?", minutes=0),
        make_message("r1", "Use the pipeline", thread_id="root", parent_id="root", author="user_slack_U2", minutes=1),
        make_message(
            "other",
            "Unrelated",
            minutes=2,
            channel_id="chan_github_acme_widgets",
            source_type=SourceType.GITHUB,
        ),
    ]


class TestMessages:
    def test_round_trip(self, store, make_message):
        msg = make_message(
            "m1",
            "run `make build`",
            mentions={"alice"},
            urls=["https://x.io"],
            code_blocks=[CodeBlock(code="make build", language="bash")],
            source_metadata={"ts": "1700000000.000100"},
        )
        store.save_message(msg)

        loaded = store.get_message("m1")
        assert loaded == msg

    def test_missing(self, store):
        assert store.get_message("nope") is None

    def test_upsert_updates_content_only(self, store, make_message):
        store.save_message(make_message("m1", "first"))
        store.save_message(make_message("m1", "edited", thread_id="elsewhere", minutes=30))

        loaded = store.get_message("m1")
        assert loaded.content == "edited"
        assert loaded.thread_id == "m1"
        assert loaded.timestamp == make_message("m1").timestamp
        assert store.count_messages() == 1

    def test_query_filters(self, store, thread):
        for msg in thread:
            store.save_message(msg)

        def ids(**filters):
            return [m.id for m in store.query_messages(MessageQuery(**filters))]

        assert ids() == ["root", "r1", "other"]
        assert ids(thread_id="root") == ["root", "r1"]
        assert ids(source_type=SourceType.GITHUB) == ["other"]
        assert ids(channel_id="chan_slack_C1") == ["root", "r1"]
        assert ids(author_id="user_slack_U2") == ["r1"]
        assert ids(since=thread[1].timestamp) == ["r1", "other"]
        assert ids(until=thread[1].timestamp) == ["root", "r1"]
        assert ids(limit=1, offset=1) == ["r1"]
        assert ids(limit=0) == ["root", "r1", "other"]

    def test_query_by_classification(self, store, thread):
        for msg in thread:
            store.save_message(msg)
        store.save_classification(
            Classification(message_id="root", type=ClassificationType.QUESTION, confidence=0.9)
        )

        result = store.query_messages(MessageQuery(classification=ClassificationType.QUESTION))
        assert [m.id for m in result] == ["root"]

    def test_all_messages_ignores_default_limit(self, store, make_message):
        for i in range(105):
            store.save_message(make_message(f"m{i:03d}", minutes=i))
        assert len(store.all_messages()) == 105
        assert len(store.query_messages()) == 100

    def test_timestamps_compared_in_utc(self, store, make_message):
        msg = make_message("m1")
        store.save_message(msg)
        local = msg.timestamp.astimezone(timezone(timedelta(hours=2)))
        assert [m.id for m in store.query_messages(MessageQuery(since=local))] == ["m1"]


class TestUsersAndChannels:
    def test_user_upsert_keeps_known_fields(self, store):
        store.save_user(User(id="user_slack_U1", source_type=SourceType.SLACK, source_id="U1", display_name="alice"))
        store.save_user(User(id="user_slack_U1", source_type=SourceType.SLACK, source_id="U1"))

        assert store.get_user("user_slack_U1").display_name == "alice"
        assert store.get_user("user_slack_U9") is None

    def test_channel_round_trip(self, store):
        channel = Channel(
            id="chan_slack_C1",
            source_type=SourceType.SLACK,
            source_id="C1",
            name="help",
            display_name="#help",
            is_private=True,
            parent_space="ws_slack_T1",
        )
        store.save_channel(channel)
        assert store.get_channel("chan_slack_C1") == channel

    def test_raw_payload(self, store):
        store.save_raw_payload("m1", "slack", "C1_1700000000.000100", {"ts": "1700000000.000100"})
        store.save_raw_payload("m1", "slack", "C1_1700000000.000100", {"ts": "1700000000.000100", "edited": True})

        assert store.get_raw_payload("m1") == {"ts": "1700000000.000100", "edited": True}
        assert store.get_raw_payload("m2") is None


class TestClassifications:
    def test_upsert_per_type(self, store):
        store.save_classification(
            Classification(message_id="m1", type=ClassificationType.QUESTION, confidence=0.4, signals=["question_mark"])
        )
        store.save_classification(
            Classification(message_id="m1", type=ClassificationType.QUESTION, confidence=0.9, signals=["a", "b"])
        )
        store.save_classification(
            Classification(message_id="m1", type=ClassificationType.ACKNOWLEDGMENT, confidence=0.3)
        )

        results = store.get_classifications("m1")
        assert [(c.type, c.confidence) for c in results] == [
            (ClassificationType.ACKNOWLEDGMENT, 0.3),
            (ClassificationType.QUESTION, 0.9),
        ]
        assert results[1].signals == ["a", "b"]

    def test_replace_removes_stale_labels(self, store):
        store.replace_classifications(
            "m1",
            [
                Classification(message_id="m1", type=ClassificationType.QUESTION, confidence=0.9),
                Classification(message_id="m1", type=ClassificationType.SOLUTION, confidence=0.4),
            ],
        )
        store.replace_classifications(
            "m1", [Classification(message_id="m1", type=ClassificationType.SOLUTION, confidence=0.65)]
        )

        assert [(c.type, c.confidence) for c in store.get_classifications("m1")] == [
            (ClassificationType.SOLUTION, 0.65)
        ]

        store.replace_classifications("m1", [])
        assert store.get_classifications("m1") == []

    def test_replace_is_atomic(self, store):
        store.replace_classifications(
            "m1", [Classification(message_id="m1", type=ClassificationType.QUESTION, confidence=0.9)]
        )
        duplicate = Classification(message_id="m1", type=ClassificationType.ANSWER, confidence=0.5)

        with pytest.raises(PersistenceError):
            store.replace_classifications("m1", [duplicate, duplicate])

        assert [c.type for c in store.get_classifications("m1")] == [ClassificationType.QUESTION]


class TestEnrichments:
    def test_round_trip_and_upsert(self, store):
        store.save_enrichment(Enrichment(message_id="m1", is_question=True, char_count=10, word_count=2))
        store.save_enrichment(Enrichment(message_id="m1", char_count=12, word_count=3, has_code=True))

        assert store.get_enrichment("m1") == Enrichment(
            message_id="m1", char_count=12, word_count=3, has_code=True
        )
        assert store.get_enrichment("m2") is None

    def test_query_by_enrichment(self, store, thread):
        for msg in thread:
            store.save_message(msg)
        store.save_enrichment(Enrichment(message_id="root", is_question=True, char_count=16, word_count=4))
        store.save_enrichment(
            Enrichment(message_id="r1", char_count=16, word_count=3, has_links=True, has_quotes=True)
        )

        def ids(**filters):
            return [m.id for m in store.query_messages(MessageQuery(**filters))]

        assert ids(is_question=True) == ["root"]
        assert ids(is_question=False) == ["r1"]
        assert ids(has_links=True, has_quotes=True) == ["r1"]
        assert ids(has_code=True) == []
        # never enriched
        assert "other" not in ids(has_code=False)


class TestErrors:
    def test_sqlite_error_becomes_persistence_error(self, store, make_message):
        store.conn.execute("DROP TABLE messages")
        with pytest.raises(PersistenceError):
            store.save_message(make_message("m1"))

    def test_file_database_created(self, tmp_path, make_message):
        db = MessageStore(str(tmp_path / "nested" / "threadmine.db"))
        db.save_message(make_message("m1"))
        db.close()

        reopened = MessageStore(str(tmp_path / "nested" / "threadmine.db"))
        assert reopened.get_message("m1") is not None
        reopened.close()

from datetime import datetime

import pytest

from cinelog_rec.models import WatchStatus


def test_init_db_creates_expected_tables(fresh_db):
    db = fresh_db

    with db.get_db(read_only=True) as conn:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }

    expected = {
        "watch_records",
        "activities",
        "follows",
        "movie_lists",
        "list_movies",
        "conversations",
        "content_analyses",
        "user_badges",
    }
    assert expected.issubset(tables)


def test_nested_transactions_commit_once(fresh_db):
    db = fresh_db

    with db.get_db() as conn:
        conn.execute("INSERT INTO follows (follower_id, following_id, created_at) VALUES ('a', 'b', 'now')")
        with db.get_db() as inner:
            inner.execute("INSERT INTO follows (follower_id, following_id, created_at) VALUES ('a', 'c', 'now')")

    assert sorted(db.get_following("a")) == ["b", "c"]


def test_outer_failure_rolls_back_nested_work(fresh_db):
    db = fresh_db

    with pytest.raises(RuntimeError):
        with db.get_db() as conn:
            with db.get_db() as inner:
                inner.execute("INSERT INTO follows (follower_id, following_id, created_at) VALUES ('a', 'b', 'now')")
            raise RuntimeError("boom")

    assert db.get_following("a") == []


def test_upsert_creates_then_mutates_single_record(fresh_db):
    db = fresh_db

    created = db.upsert_watch_record("alice", 10, status=WatchStatus.WANT_TO_WATCH)
    assert created.watch_count == 0
    assert created.watched_at is None

    watched = db.upsert_watch_record("alice", 10, status="watched", rating=4, tags=["noir", "noir", "rewatch"])
    rated = db.upsert_watch_record("alice", 10, rating=4.5, review="Better the second time")

    assert watched.watch_count == 1
    assert watched.tags == ["noir", "rewatch"]
    assert rated.status is WatchStatus.WATCHED
    assert rated.watch_count == 1

    stored = db.get_watch_record("alice", 10)
    assert stored.rating == 4.5
    assert stored.review == "Better the second time"
    assert stored.tags == ["noir", "rewatch"]
    assert isinstance(stored.watched_at, datetime)

    with db.get_db(read_only=True) as conn:
        count = conn.execute("SELECT COUNT(*) FROM watch_records WHERE user_id = 'alice'").fetchone()[0]
    assert count == 1


def test_rewatch_bumps_counter(fresh_db):
    db = fresh_db

    first = db.upsert_watch_record("alice", 10)
    again = db.upsert_watch_record("alice", 10, status=WatchStatus.WATCHED)

    assert first.watch_count == 1
    assert again.watch_count == 2


def test_upsert_rejects_bad_rating(fresh_db):
    with pytest.raises(ValueError):
        fresh_db.upsert_watch_record("alice", 10, rating=6)
    assert fresh_db.get_watch_record("alice", 10) is None


def test_remove_is_a_tombstone(fresh_db):
    db = fresh_db
    db.upsert_watch_record("alice", 1, rating=5)
    db.upsert_watch_record("alice", 2, rating=3)

    assert db.remove_watch_record("alice", 1) is True
    assert db.remove_watch_record("alice", 404) is False

    assert [r.movie_id for r in db.load_watch_records("alice")] == [2]
    assert db.get_watch_record("alice", 1).status is WatchStatus.REMOVED
    assert len(db.load_watch_records("alice", include_removed=True)) == 2
    assert [r.movie_id for r in db.load_watch_records("alice", status="removed")] == [1]


def test_load_watch_records_filters_and_orders(fresh_db):
    db = fresh_db
    db.upsert_watch_record("alice", 1, watched_at=datetime(2023, 1, 1))
    db.upsert_watch_record("alice", 2, watched_at=datetime(2024, 1, 1))
    db.upsert_watch_record("alice", 3, status=WatchStatus.WATCHING)
    db.upsert_watch_record("bob", 4)

    assert [r.movie_id for r in db.load_watch_records("alice", status=WatchStatus.WATCHED)] == [2, 1]
    assert [r.movie_id for r in db.load_watch_records("alice")] == [2, 1, 3]
    assert db.load_user_ids() == ["alice", "bob"]


def test_activities_newest_first(fresh_db):
    db = fresh_db
    db.add_activity("alice", "watched", movie_id=1)
    db.add_activity("bob", "rated", movie_id=2, rating=4)
    db.add_activity("alice", "followed", target_user_id="bob")

    assert [a["type"] for a in db.get_activities("alice")] == ["followed", "watched"]
    assert len(db.get_activities(limit=2)) == 2


def test_follow_graph(fresh_db):
    db = fresh_db

    assert db.follow("alice", "bob") is True
    assert db.follow("alice", "bob") is False
    db.follow("carol", "bob")

    assert db.get_following("alice") == ["bob"]
    assert set(db.get_followers("bob")) == {"alice", "carol"}
    assert db.unfollow("alice", "bob") is True
    assert db.unfollow("alice", "bob") is False
    with pytest.raises(ValueError):
        db.follow("alice", "alice")


def test_lists_keep_insertion_order(fresh_db):
    db = fresh_db
    list_id = db.create_list("alice", " Heists ", description="crews and vaults", is_public=False)

    assert db.add_to_list(list_id, 949) is True
    assert db.add_to_list(list_id, 107) is True
    assert db.add_to_list(list_id, 949) is False
    with pytest.raises(ValueError):
        db.add_to_list(9999, 1)
    with pytest.raises(ValueError):
        db.create_list("alice", "  ")

    lists = db.get_user_lists("alice")
    assert len(lists) == 1
    assert lists[0]["name"] == "Heists"
    assert lists[0]["movies"] == [949, 107]
    assert lists[0]["is_public"] is False


def test_conversation_round_trip(fresh_db):
    db = fresh_db
    messages = [{"role": "user", "content": "hi", "timestamp": "2024-01-01T00:00:00"}]

    db.save_conversation("alice", "s1", messages)
    assert db.load_conversation("alice", "s1") == messages
    assert db.load_conversation("alice", "s2") is None

    db.delete_conversation("alice", "s1")
    assert db.load_conversation("alice", "s1") is None


def test_content_analysis_cache(fresh_db):
    db = fresh_db

    assert db.load_content_analysis(1) is None
    db.store_content_analysis(1, {"mood": "tense"})
    db.store_content_analysis(1, {"mood": "calm"})

    assert db.load_content_analysis(1) == {"mood": "calm"}


def test_parse_timestamp_naive_strips_timezone(fresh_db):
    parsed = fresh_db.parse_timestamp_naive("2024-03-01T12:00:00+02:00")

    assert parsed.tzinfo is None
    assert parsed.hour == 12


def test_badges_are_awarded_once(fresh_db):
    db = fresh_db

    assert db.award_badge("alice", "first_movie") is True
    assert db.award_badge("alice", "first_movie") is False
    db.award_badge("bob", "movie_buff")

    badges = db.get_user_badges("alice")
    assert list(badges) == ["first_movie"]
    assert isinstance(badges["first_movie"], datetime)

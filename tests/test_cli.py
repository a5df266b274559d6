import json
import logging
import sys

import pytest

from cinelog_rec import cli
from cinelog_rec.models import Movie, WatchStatus


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["cinelog-rec", *argv])
    cli.main()


def test_validate_user_id():
    assert cli._validate_user_id("Alice_01") == "alice_01"
    assert cli._validate_user_id("Bad Name!") == "badname"
    with pytest.raises(ValueError):
        cli._validate_user_id("!!!")


def test_resolve_context_expands_presets():
    assert cli._resolve_context("date_night") == "romantic movies perfect for a date night"
    assert cli._resolve_context("something with robots") == "something with robots"
    assert cli._resolve_context(None) is None


def test_main_dispatches_to_subcommand(monkeypatch):
    called = {}

    def fake_feed(args):
        called["command"] = args.command

    monkeypatch.setattr(cli, "cmd_feed", fake_feed)

    _run(monkeypatch, "feed")

    assert called["command"] == "feed"


def test_log_rate_remove_history_flow(fresh_db, monkeypatch, caplog):
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "log", "alice", "10", "--tags", "heist", "--favorite")
    _run(monkeypatch, "log", "alice", "10")
    _run(monkeypatch, "rate", "alice", "10", "4.5", "--review", "Great")
    _run(monkeypatch, "rate", "alice", "20", "3")
    _run(monkeypatch, "log", "alice", "30", "--status", "want_to_watch")

    record = fresh_db.get_watch_record("alice", 10)
    assert record.watch_count == 2
    assert record.rating == 4.5
    assert record.is_favorite
    assert fresh_db.get_watch_record("alice", 20).status is WatchStatus.WATCHED
    assert [a["type"] for a in fresh_db.get_activities("alice")][:2] == ["added_to_watchlist", "rated"]

    _run(monkeypatch, "remove", "alice", "20")
    _run(monkeypatch, "remove", "alice", "999")
    assert fresh_db.get_watch_record("alice", 20).status is WatchStatus.REMOVED
    assert "has not logged movie 999" in caplog.text

    caplog.clear()
    _run(monkeypatch, "history", "alice", "--no-titles")
    assert "History for alice (2 movies)" in caplog.text
    assert "movie 10 4.5/5 *" in caplog.text


def test_recommend_json_output(fresh_db, monkeypatch, caplog):
    from cinelog_rec.recommender import ScoredCandidate

    seen = {}

    async def fake_recommend(args, user_id):
        seen["limit"] = args.limit
        seen["user_id"] = user_id
        movie = Movie(id=5, title="Heat", release_date="1995-12-15", vote_average=8.0)
        return [ScoredCandidate(5, 77.5, ["highly rated"], "genre:Crime", movie)], None

    monkeypatch.setattr(cli, "_recommend_async", fake_recommend)
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "recommend", "Alice", "--format", "json")

    assert seen == {"limit": 20, "user_id": "alice"}
    payload = json.loads(caplog.records[-1].getMessage())
    assert payload[0]["title"] == "Heat"
    assert payload[0]["reasons"] == ["highly rated"]


def test_recommend_ai_only_defaults_to_smaller_limit(fresh_db, monkeypatch, caplog):
    seen = {}

    async def fake_recommend(args, user_id):
        seen["limit"] = args.limit
        return [], "nothing"

    monkeypatch.setattr(cli, "_recommend_async", fake_recommend)
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "recommend", "alice", "--ai-only")

    assert seen["limit"] == 10
    assert "No recommendations for 'alice'" in caplog.text


def test_follow_and_unfollow(fresh_db, monkeypatch):
    _run(monkeypatch, "follow", "alice", "bob")
    assert fresh_db.get_following("alice") == ["bob"]
    assert fresh_db.get_activities("alice")[0]["target_user_id"] == "bob"

    _run(monkeypatch, "follow", "alice", "bob", "--unfollow")
    assert fresh_db.get_following("alice") == []


def test_lists_commands(fresh_db, monkeypatch, caplog):
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "list-create", "alice", "Heists", "--private")
    list_id = fresh_db.get_user_lists("alice")[0]["id"]
    _run(monkeypatch, "list-add", str(list_id), "949")
    _run(monkeypatch, "lists", "alice")

    assert f"[{list_id}] Heists (private): 1 movies" in caplog.text


def test_chat_clear_only(fresh_db, monkeypatch, caplog):
    fresh_db.save_conversation("alice", "default", [{"role": "user", "content": "hi"}])
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "chat", "alice", "--clear")

    assert fresh_db.load_conversation("alice", "default") is None
    assert "Cleared conversation 'default' for alice" in caplog.text


def test_out_of_range_ratings_are_reported(fresh_db, monkeypatch, caplog):
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "rate", "alice", "603", "0")
    _run(monkeypatch, "log", "alice", "603", "--rating", "7")

    assert "Could not rate movie 603" in caplog.text
    assert "Could not log movie 603" in caplog.text
    assert fresh_db.get_watch_record("alice", 603) is None
    assert fresh_db.get_activities("alice") == []


def test_negative_limit_and_self_follow_are_reported(fresh_db, monkeypatch, caplog):
    async def fail_recommend(args, user_id):
        raise AssertionError("should not be called")

    monkeypatch.setattr(cli, "_recommend_async", fail_recommend)
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "recommend", "alice", "--limit", "-1")
    _run(monkeypatch, "follow", "alice", "alice")
    _run(monkeypatch, "list-create", "alice", "   ")

    assert "--limit must be >= 0" in caplog.text
    assert "cannot follow themselves" in caplog.text
    assert fresh_db.get_following("alice") == []
    assert fresh_db.get_user_lists("alice") == []


def test_streak_and_badges_commands(fresh_db, monkeypatch, caplog):
    fresh_db.upsert_watch_record("alice", 10, rating=4, review="Tense")
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "streak", "alice")
    _run(monkeypatch, "badges", "alice", "--no-genres")

    assert "alice: current streak 1 day(s), longest 1 day(s)" in caplog.text
    assert "New badge: First Steps" in caplog.text
    assert "[ ] Movie Buff (rare) 1/25" in caplog.text
    assert set(fresh_db.get_user_badges("alice")) == {"first_movie", "first_review"}


def test_year_review_command(fresh_db, monkeypatch, caplog):
    from datetime import datetime

    fresh_db.upsert_watch_record("alice", 10, rating=5, watched_at=datetime(2023, 4, 2))
    fresh_db.upsert_watch_record("alice", 11, watched_at=datetime(2022, 4, 2))
    heat = Movie(id=10, title="Heat", genres=["Crime"], release_date="1995-12-15", runtime=170)
    monkeypatch.setattr(cli, "_watched_movies", lambda records: {10: heat})
    caplog.set_level(logging.INFO)

    _run(monkeypatch, "year-review", "alice", "--year", "2023")
    _run(monkeypatch, "year-review", "alice", "--year", "2021")

    assert "Movies watched: 1" in caplog.text
    assert "Hours watched: 3" in caplog.text
    assert "Top genres: Crime 100%" in caplog.text
    assert "Top rated: Heat (5/5)" in caplog.text
    assert "No movies watched by alice in 2021" in caplog.text

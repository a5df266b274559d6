import argparse
import asyncio
import atexit
import json
import logging
import re
from datetime import date

from tqdm import tqdm

from .database import (
    init_db, close_pool, upsert_watch_record, get_watch_record, load_watch_records,
    remove_watch_record, load_user_ids, add_activity, get_activities,
    follow, unfollow, get_following, get_followers, create_list, add_to_list, get_user_lists,
    get_user_badges,
)
from .config import CONTEXT_PRESETS, DEFAULT_RECOMMENDATION_LIMIT, DEFAULT_AI_LIMIT
from .exceptions import MetadataUnavailable
from .models import Movie, WatchStatus
from .tmdb import TMDBClient, AsyncTMDBClient
from .ai import GeminiClient
from .recommender import RecommendationEngine, ScoredCandidate
from .content import analyze_movie_content
from .assistant import ConversationalAssistant
from .sessions import SessionStore
from .social import suggest_follows
from .profile import profile_to_dict
from .stats import watch_streaks, year_in_review, badge_counters, evaluate_badges, check_and_award_badges

logger = logging.getLogger(__name__)

atexit.register(close_pool)

# Activity type recorded for each logged watch status
STATUS_ACTIVITIES = {
    WatchStatus.WATCHED: 'watched',
    WatchStatus.WATCHING: 'started_watching',
    WatchStatus.WANT_TO_WATCH: 'added_to_watchlist',
}


def _validate_user_id(user_id: str) -> str:
    """
    Sanitize a user id.
    Returns lowercased alphanumeric + underscores/hyphens only.
    """
    sanitized = re.sub(r'[^a-z0-9_-]', '', user_id.lower())
    if not sanitized:
        raise ValueError(f"Invalid user id: {user_id!r}")
    if sanitized != user_id.lower():
        logger.warning(f"User id '{user_id}' sanitized to '{sanitized}'")
    return sanitized


def _resolve_context(context: str | None) -> str | None:
    """Expand an occasion preset name; free text passes through."""
    if not context:
        return None
    return CONTEXT_PRESETS.get(context, context)


def cmd_log(args: argparse.Namespace) -> None:
    """Log a movie as watched, watching or on the watchlist."""
    init_db()
    user_id = _validate_user_id(args.user)
    status = WatchStatus(args.status)

    try:
        record = upsert_watch_record(
            user_id,
            args.movie_id,
            status=status,
            rating=args.rating,
            review=args.review,
            tags=args.tags,
            is_favorite=True if args.favorite else None,
        )
    except ValueError as e:
        logger.error(f"Could not log movie {args.movie_id}: {e}")
        return
    add_activity(user_id, STATUS_ACTIVITIES[status], movie_id=args.movie_id, rating=args.rating, review=args.review)

    count = f" (watch #{record.watch_count})" if record.watch_count > 1 else ""
    logger.info(f"Logged movie {args.movie_id} as {status.value} for {user_id}{count}")


def cmd_rate(args: argparse.Namespace) -> None:
    init_db()
    user_id = _validate_user_id(args.user)

    existing = get_watch_record(user_id, args.movie_id)
    # Rating an unlogged movie logs it as watched
    status = None if existing and existing.status == WatchStatus.WATCHED else WatchStatus.WATCHED
    try:
        upsert_watch_record(user_id, args.movie_id, status=status, rating=args.rating, review=args.review)
    except ValueError as e:
        logger.error(f"Could not rate movie {args.movie_id}: {e}")
        return
    add_activity(
        user_id,
        'reviewed' if args.review else 'rated',
        movie_id=args.movie_id,
        rating=args.rating,
        review=args.review,
    )
    logger.info(f"Rated movie {args.movie_id} {args.rating:g}/5 for {user_id}")


def cmd_remove(args: argparse.Namespace) -> None:
    init_db()
    user_id = _validate_user_id(args.user)
    if remove_watch_record(user_id, args.movie_id):
        logger.info(f"Removed movie {args.movie_id} from {user_id}'s history")
    else:
        logger.error(f"{user_id} has not logged movie {args.movie_id}")


def cmd_history(args: argparse.Namespace) -> None:
    """Show a user's logged movies, with titles from the catalog unless --no-titles."""
    init_db()
    user_id = _validate_user_id(args.user)
    records = load_watch_records(user_id, status=args.status)

    if not records:
        logger.info(f"No history for '{user_id}'")
        return

    titles: dict[int, str] = {}
    if not args.no_titles:
        with TMDBClient() as client:
            for record in tqdm(records, desc="Titles"):
                try:
                    movie = client.fetch_movie(record.movie_id)
                except MetadataUnavailable as e:
                    logger.debug(f"No title for {record.movie_id}: {e}")
                    continue
                if movie:
                    titles[record.movie_id] = f"{movie.title} ({movie.year})" if movie.year else movie.title

    logger.info(f"\nHistory for {user_id} ({len(records)} movies):")
    for record in records:
        label = titles.get(record.movie_id, f"movie {record.movie_id}")
        rating = f" {record.rating:g}/5" if record.rating is not None else ""
        favorite = " *" if record.is_favorite else ""
        watched_at = f" on {record.watched_at:%Y-%m-%d}" if record.watched_at else ""
        logger.info(f"  [{record.status.value}] {label}{rating}{favorite}{watched_at}")


async def _load_profile(user_id: str):
    async with AsyncTMDBClient() as tmdb:
        profile, _, _ = await RecommendationEngine(tmdb).load_profile(user_id)
    return profile


def cmd_profile(args: argparse.Namespace) -> None:
    """Show user's preference profile."""
    init_db()
    user_id = _validate_user_id(args.user)
    profile = asyncio.run(_load_profile(user_id))

    if args.format == 'json':
        logger.info(json.dumps(profile_to_dict(profile), indent=2))
        return

    source = "defaults (no watched history)" if profile.is_default else f"{profile.n_watched} watched movies"
    logger.info(f"\nProfile for {user_id} from {source}")
    logger.info(f"  Average rating: {profile.average_rating:.2f}/5 ({profile.n_rated} rated)")
    logger.info(f"  Preferred runtime: ~{profile.preferred_runtime} min")
    logger.info(f"  Viewing style: {profile.watching_frequency}")

    if profile.genres:
        logger.info("\nTop genres:")
        for genre, weight in profile.genres.items():
            logger.info(f"  {genre}: {weight:.1f}")
    if profile.decades:
        logger.info(f"\nDecades: {', '.join(f'{d}s' for d in profile.decades)}")
    if profile.directors:
        logger.info(f"Directors: {', '.join(profile.directors)}")
    if profile.actors:
        logger.info(f"Actors: {', '.join(profile.actors)}")


def _output_recommendations(
    recs: list[ScoredCandidate],
    args: argparse.Namespace,
    user_id: str,
    reasoning: str | None = None,
) -> None:
    """Format and log recommendations in the requested format."""
    if args.format == 'json':
        payload = [r.to_dict() for r in recs]
        if reasoning is not None:
            logger.info(json.dumps({"recommendations": payload, "reasoning": reasoning}, indent=2))
        else:
            logger.info(json.dumps(payload, indent=2))
        return

    logger.info(f"\nTop {len(recs)} recommendations for {user_id}:")
    for i, r in enumerate(recs, 1):
        title = r.movie.title if r.movie else f"movie {r.movie_id}"
        year = f" ({r.movie.year})" if r.movie and r.movie.year else ""
        logger.info(f"{i}. {title}{year} - Score: {r.score:.1f} [{r.source}]")
        if r.reasons:
            logger.info(f"   Why: {', '.join(r.reasons)}")
    if reasoning:
        logger.info(f"\n{reasoning}")


async def _recommend_async(args: argparse.Namespace, user_id: str):
    context = _resolve_context(args.context)
    async with AsyncTMDBClient() as tmdb, GeminiClient() as ai:
        engine = RecommendationEngine(tmdb, None if args.no_ai else ai)
        if args.ai_only:
            result = await engine.ai_recommend(user_id, context=context, limit=args.limit)
            if result.used_fallback:
                logger.warning("AI service unavailable; showing fallback picks")
            return result.candidates, result.reasoning
        recs = await engine.recommend(user_id, limit=args.limit, include_ai=not args.no_ai, context=context)
        return recs, None


def cmd_recommend(args: argparse.Namespace) -> None:
    """Generate recommendations."""
    init_db()
    user_id = _validate_user_id(args.user)
    if args.ai_only and args.no_ai:
        logger.error("--ai-only and --no-ai are mutually exclusive")
        return
    if args.limit < 0:
        logger.error(f"--limit must be >= 0, got {args.limit}")
        return

    recs, reasoning = asyncio.run(_recommend_async(args, user_id))
    if not recs:
        logger.info(f"No recommendations for '{user_id}' right now")
        return
    _output_recommendations(recs, args, user_id, reasoning)


def cmd_search(args: argparse.Namespace) -> None:
    with TMDBClient() as client:
        try:
            page = client.search_movies(args.query, page=args.page)
        except MetadataUnavailable as e:
            logger.error(f"Search failed: {e}")
            return

    logger.info(f"\n{page.total_results} results (page {page.page}/{max(page.total_pages, 1)}):")
    for movie in page.results:
        year = f" ({movie.year})" if movie.year else ""
        logger.info(f"  [{movie.id}] {movie.title}{year} - {movie.vote_average:.1f}")


async def _analyze_async(movie_id: int, use_cache: bool):
    async with AsyncTMDBClient() as tmdb, GeminiClient() as ai:
        movie = await tmdb.fetch_movie(movie_id)
        if movie is None:
            return None, None
        return movie, await analyze_movie_content(movie, ai, use_cache=use_cache)


def cmd_analyze(args: argparse.Namespace) -> None:
    """Show content warnings and themes for a movie."""
    init_db()
    try:
        movie, result = asyncio.run(_analyze_async(args.movie_id, not args.refresh))
    except MetadataUnavailable as e:
        logger.error(f"Could not fetch movie {args.movie_id}: {e}")
        return
    if movie is None:
        logger.error(f"Movie {args.movie_id} not found")
        return

    analysis = result.value
    logger.info(f"\n{movie.title} ({movie.year})" + ("" if result.ok else " [fallback analysis]"))
    logger.info(f"  Micro-genres: {', '.join(analysis.micro_genres)}")
    logger.info(f"  Themes: {', '.join(analysis.themes)}")
    logger.info(f"  Mood: {analysis.mood}, pacing: {analysis.pacing}, complexity {analysis.complexity}/10")
    if analysis.content_warnings:
        logger.info("  Content warnings:")
        for warning in analysis.content_warnings:
            logger.info(f"    {warning.type} ({warning.severity}) {warning.description}")
    else:
        logger.info("  No content warnings")


async def _chat_async(user_id: str, message: str, session_id: str):
    async with AsyncTMDBClient() as tmdb, GeminiClient() as ai:
        assistant = ConversationalAssistant(ai, tmdb, SessionStore())
        return await assistant.process_message(user_id, message, session_id=session_id)


def cmd_chat(args: argparse.Namespace) -> None:
    """Send one message to the recommendation assistant."""
    init_db()
    user_id = _validate_user_id(args.user)

    if args.clear:
        SessionStore().clear(user_id, args.session)
        logger.info(f"Cleared conversation '{args.session}' for {user_id}")
        if not args.message:
            return

    if not args.message:
        logger.error("Nothing to send")
        return

    response = asyncio.run(_chat_async(user_id, " ".join(args.message), args.session))
    logger.info(f"\n{response.message}")
    for movie in response.suggestions:
        year = f" ({movie.year})" if movie.year else ""
        logger.info(f"  - [{movie.id}] {movie.title}{year}")
    if response.follow_up:
        logger.info(f"\n{response.follow_up}")


def cmd_follow(args: argparse.Namespace) -> None:
    init_db()
    user_id = _validate_user_id(args.user)
    target = _validate_user_id(args.target)

    if args.unfollow:
        if unfollow(user_id, target):
            logger.info(f"{user_id} unfollowed {target}")
        else:
            logger.info(f"{user_id} was not following {target}")
        return

    try:
        followed = follow(user_id, target)
    except ValueError as e:
        logger.error(str(e))
        return

    if followed:
        add_activity(user_id, 'followed', target_user_id=target)
        logger.info(f"{user_id} now follows {target}")
    else:
        logger.info(f"{user_id} already follows {target}")


async def _load_all_profiles(user_ids: list[str]):
    profiles = {}
    async with AsyncTMDBClient() as tmdb:
        engine = RecommendationEngine(tmdb)
        for user_id in tqdm(user_ids, desc="Profiles"):
            profiles[user_id], _, _ = await engine.load_profile(user_id)
    return profiles


def cmd_suggest_follows(args: argparse.Namespace) -> None:
    """Suggest users to follow by taste compatibility."""
    init_db()
    user_id = _validate_user_id(args.user)

    user_ids = load_user_ids()
    if user_id not in user_ids:
        logger.error(f"No history for '{user_id}'")
        return

    if args.limit < 0:
        logger.error(f"--limit must be >= 0, got {args.limit}")
        return

    profiles = asyncio.run(_load_all_profiles(user_ids))
    suggestions = suggest_follows(user_id, profiles, following=get_following(user_id), limit=args.limit)

    if not suggestions:
        logger.info("\nNo users to suggest yet.")
        return

    logger.info(f"\nUsers with similar taste to {user_id}:")
    logger.info("-" * 50)
    for s in suggestions:
        shared = f" - shared: {', '.join(s.compatibility.shared_genres[:3])}" if s.compatibility.shared_genres else ""
        logger.info(f"  {s.user_id}: {s.compatibility.score:.0%} ({s.compatibility.style}){shared}")


def cmd_list_create(args: argparse.Namespace) -> None:
    init_db()
    user_id = _validate_user_id(args.user)
    try:
        list_id = create_list(user_id, args.name, description=args.description, is_public=not args.private)
    except ValueError as e:
        logger.error(str(e))
        return
    add_activity(user_id, 'created_list', list_id=list_id)
    logger.info(f"Created list {list_id} '{args.name}'")


def cmd_list_add(args: argparse.Namespace) -> None:
    init_db()
    try:
        added = add_to_list(args.list_id, args.movie_id)
    except ValueError as e:
        logger.error(str(e))
        return
    logger.info(f"Added movie {args.movie_id} to list {args.list_id}" if added else "Movie already on list")


def cmd_lists(args: argparse.Namespace) -> None:
    init_db()
    user_id = _validate_user_id(args.user)
    lists = get_user_lists(user_id)
    if not lists:
        logger.info(f"{user_id} has no lists")
        return
    for entry in lists:
        visibility = "" if entry['is_public'] else " (private)"
        logger.info(f"[{entry['id']}] {entry['name']}{visibility}: {len(entry['movies'])} movies")


def cmd_feed(args: argparse.Namespace) -> None:
    """Show recent activity, optionally for one user."""
    init_db()
    user_id = _validate_user_id(args.user) if args.user else None
    for activity in get_activities(user_id, limit=args.limit):
        target = activity['movie_id'] or activity['target_user_id'] or activity['list_id'] or activity['badge_id'] or ""
        logger.info(f"{activity['created_at'][:16]} {activity['user_id']} {activity['type']} {target}")


async def _fetch_movies(movie_ids: list[int]) -> dict[int, Movie]:
    async with AsyncTMDBClient() as tmdb:
        return await tmdb.fetch_movies(movie_ids)


def _watched_movies(records) -> dict[int, Movie]:
    ids = [r.movie_id for r in records if r.status == WatchStatus.WATCHED]
    if not ids:
        return {}
    try:
        return asyncio.run(_fetch_movies(ids))
    except MetadataUnavailable as e:
        logger.warning(f"Catalog unavailable, continuing without movie details: {e}")
        return {}


def cmd_streak(args: argparse.Namespace) -> None:
    init_db()
    user_id = _validate_user_id(args.user)
    streaks = watch_streaks(load_watch_records(user_id, status=WatchStatus.WATCHED))
    logger.info(f"{user_id}: current streak {streaks.current} day(s), longest {streaks.longest} day(s)")


def cmd_year_review(args: argparse.Namespace) -> None:
    """Summarize a user's year of watching."""
    init_db()
    user_id = _validate_user_id(args.user)
    year = args.year or date.today().year

    records = [
        r for r in load_watch_records(user_id, status=WatchStatus.WATCHED)
        if r.watched_at and r.watched_at.year == year
    ]
    review = year_in_review(records, _watched_movies(records), year)
    if review is None:
        logger.info(f"No movies watched by {user_id} in {year}")
        return

    logger.info(f"\n{user_id}'s {year} in review")
    logger.info("-" * 50)
    logger.info(f"  Movies watched: {review.total_movies}")
    logger.info(f"  Hours watched: {review.total_hours}")
    logger.info(f"  Average rating: {review.average_rating:.1f}/5")
    logger.info(f"  Reviews written: {review.reviews_written}")
    logger.info(f"  Longest streak: {review.longest_streak} day(s)")
    if review.top_genres:
        genres = ', '.join(f"{g.name} {g.percentage}%" for g in review.top_genres)
        logger.info(f"  Top genres: {genres}")
    if review.favorite_director:
        logger.info(f"  Favorite director: {review.favorite_director}")
    if review.most_watched_month:
        month, count = review.most_watched_month
        logger.info(f"  Busiest month: {month} ({count})")
    if review.most_watched_decade:
        decade, count = review.most_watched_decade
        logger.info(f"  Favorite decade: {decade}s ({count})")
    if review.top_rated:
        title, rating = review.top_rated
        logger.info(f"  Top rated: {title} ({rating:g}/5)")
    for milestone in review.milestones:
        logger.info(f"  * {milestone}")


def cmd_badges(args: argparse.Namespace) -> None:
    """Award newly earned badges and show progress toward the rest."""
    init_db()
    user_id = _validate_user_id(args.user)

    records = load_watch_records(user_id)
    movies = {} if args.no_genres else _watched_movies(records)

    for badge in check_and_award_badges(user_id, movies):
        logger.info(f"New badge: {badge.name} - {badge.description}")

    earned = get_user_badges(user_id)
    counters = badge_counters(
        records,
        movies,
        lists_created=len(get_user_lists(user_id)),
        followers=len(get_followers(user_id)),
    )
    logger.info(f"\nBadges for {user_id} ({len(earned)} earned):")
    for progress in evaluate_badges(counters):
        badge = progress.badge
        if badge.id in earned:
            logger.info(f"  [x] {badge.name} ({badge.rarity}) earned {earned[badge.id]:%Y-%m-%d}")
        else:
            logger.info(f"  [ ] {badge.name} ({badge.rarity}) {progress.value}/{badge.threshold}")


def main():
    parser = argparse.ArgumentParser(description="Movie tracking recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Watch history
    log_parser = subparsers.add_parser("log", help="Log a movie")
    log_parser.add_argument("user", help="User id")
    log_parser.add_argument("movie_id", type=int, help="Catalog movie id")
    log_parser.add_argument("--status", choices=[s.value for s in STATUS_ACTIVITIES], default=WatchStatus.WATCHED.value)
    log_parser.add_argument("--rating", type=float, help="Rating from 1 to 5 stars")
    log_parser.add_argument("--review", help="Review text")
    log_parser.add_argument("--tags", nargs="*", help="Personal tags")
    log_parser.add_argument("--favorite", action="store_true", help="Mark as favorite")
    log_parser.set_defaults(func=cmd_log)

    rate_parser = subparsers.add_parser("rate", help="Rate a movie")
    rate_parser.add_argument("user", help="User id")
    rate_parser.add_argument("movie_id", type=int, help="Catalog movie id")
    rate_parser.add_argument("rating", type=float, help="Rating from 1 to 5 stars")
    rate_parser.add_argument("--review", help="Review text")
    rate_parser.set_defaults(func=cmd_rate)

    remove_parser = subparsers.add_parser("remove", help="Remove a movie from history")
    remove_parser.add_argument("user", help="User id")
    remove_parser.add_argument("movie_id", type=int, help="Catalog movie id")
    remove_parser.set_defaults(func=cmd_remove)

    history_parser = subparsers.add_parser("history", help="Show logged movies")
    history_parser.add_argument("user", help="User id")
    history_parser.add_argument("--status", choices=[s.value for s in WatchStatus], help="Only this status")
    history_parser.add_argument("--no-titles", action="store_true", help="Skip catalog title lookups")
    history_parser.set_defaults(func=cmd_history)

    # Recommendations
    profile_parser = subparsers.add_parser("profile", help="Show user's preference profile")
    profile_parser.add_argument("user", help="User id")
    profile_parser.add_argument("--format", choices=["text", "json"], default="text")
    profile_parser.set_defaults(func=cmd_profile)

    rec_parser = subparsers.add_parser("recommend", help="Generate recommendations")
    rec_parser.add_argument("user", help="User id")
    rec_parser.add_argument("--limit", type=int, default=None, help="Number of recommendations")
    rec_parser.add_argument("--no-ai", action="store_true", help="Skip AI-suggested candidates")
    rec_parser.add_argument("--ai-only", action="store_true", help="Only AI-suggested candidates, with reasoning")
    rec_parser.add_argument("--context",
                            help=f"Occasion ({', '.join(CONTEXT_PRESETS)}) or free-text context for the AI")
    rec_parser.add_argument("--format", choices=["text", "json"], default="text")
    rec_parser.set_defaults(func=cmd_recommend)

    search_parser = subparsers.add_parser("search", help="Search the movie catalog")
    search_parser.add_argument("query", help="Title to search for")
    search_parser.add_argument("--page", type=int, default=1)
    search_parser.set_defaults(func=cmd_search)

    analyze_parser = subparsers.add_parser("analyze", help="Content warnings and themes for a movie")
    analyze_parser.add_argument("movie_id", type=int, help="Catalog movie id")
    analyze_parser.add_argument("--refresh", action="store_true", help="Ignore the cached analysis")
    analyze_parser.set_defaults(func=cmd_analyze)

    chat_parser = subparsers.add_parser("chat", help="Talk to the recommendation assistant")
    chat_parser.add_argument("user", help="User id")
    chat_parser.add_argument("message", nargs="*", help="Message to send")
    chat_parser.add_argument("--session", default="default", help="Conversation id")
    chat_parser.add_argument("--clear", action="store_true", help="Forget the conversation first")
    chat_parser.set_defaults(func=cmd_chat)

    # Social
    follow_parser = subparsers.add_parser("follow", help="Follow another user")
    follow_parser.add_argument("user", help="User id")
    follow_parser.add_argument("target", help="User to follow")
    follow_parser.add_argument("--unfollow", action="store_true", help="Unfollow instead")
    follow_parser.set_defaults(func=cmd_follow)

    suggest_parser = subparsers.add_parser("suggest-follows", help="Find users with similar taste")
    suggest_parser.add_argument("user", help="User id")
    suggest_parser.add_argument("--limit", type=int, default=5)
    suggest_parser.set_defaults(func=cmd_suggest_follows)

    feed_parser = subparsers.add_parser("feed", help="Show recent activity")
    feed_parser.add_argument("user", nargs="?", help="Only this user's activity")
    feed_parser.add_argument("--limit", type=int, default=20)
    feed_parser.set_defaults(func=cmd_feed)

    # Lists
    list_create_parser = subparsers.add_parser("list-create", help="Create a movie list")
    list_create_parser.add_argument("user", help="User id")
    list_create_parser.add_argument("name", help="List name")
    list_create_parser.add_argument("--description", default="")
    list_create_parser.add_argument("--private", action="store_true")
    list_create_parser.set_defaults(func=cmd_list_create)

    list_add_parser = subparsers.add_parser("list-add", help="Add a movie to a list")
    list_add_parser.add_argument("list_id", type=int)
    list_add_parser.add_argument("movie_id", type=int)
    list_add_parser.set_defaults(func=cmd_list_add)

    lists_parser = subparsers.add_parser("lists", help="Show a user's lists")
    lists_parser.add_argument("user", help="User id")
    lists_parser.set_defaults(func=cmd_lists)

    # Gamification
    streak_parser = subparsers.add_parser("streak", help="Show watch streaks")
    streak_parser.add_argument("user", help="User id")
    streak_parser.set_defaults(func=cmd_streak)

    year_parser = subparsers.add_parser("year-review", help="Summarize a year of watching")
    year_parser.add_argument("user", help="User id")
    year_parser.add_argument("--year", type=int, help="Year to review (default: this year)")
    year_parser.set_defaults(func=cmd_year_review)

    badges_parser = subparsers.add_parser("badges", help="Check and show badges")
    badges_parser.add_argument("user", help="User id")
    badges_parser.add_argument("--no-genres", action="store_true", help="Skip catalog lookups for genre badges")
    badges_parser.set_defaults(func=cmd_badges)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if getattr(args, 'limit', 0) is None:
        args.limit = DEFAULT_AI_LIMIT if args.ai_only else DEFAULT_RECOMMENDATION_LIMIT

    args.func(args)


if __name__ == "__main__":
    main()

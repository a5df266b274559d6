import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from .config import (
    DEFAULT_RUNTIME,
    TOP_GENRES,
    MILESTONE_MOVIES,
    MILESTONE_HOURS,
    MILESTONE_RATINGS,
    MILESTONE_REVIEWS,
)
from .database import (
    load_watch_records, get_user_lists, get_followers,
    award_badge, get_user_badges, add_activity,
)
from .models import Movie, WatchRecord, WatchStatus

logger = logging.getLogger(__name__)

MONTH_NAMES = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def _watched(records: Iterable[WatchRecord]) -> list[WatchRecord]:
    return [r for r in records if r.status == WatchStatus.WATCHED]


# Streaks

@dataclass
class Streaks:
    current: int = 0
    longest: int = 0


def watch_streaks(records: Iterable[WatchRecord], today: date | None = None) -> Streaks:
    """
    Consecutive-day watch streaks from watched records with a watch date.

    The current streak counts back from today, or from yesterday when nothing
    has been watched yet today. The longest streak spans the whole history.
    """
    days = {r.watched_at.date() for r in _watched(records) if r.watched_at is not None}
    if not days:
        return Streaks()

    today = today or date.today()
    one_day = timedelta(days=1)

    check = today if today in days else today - one_day
    current = 0
    while check in days:
        current += 1
        check -= one_day

    longest = run = 0
    previous = None
    for day in sorted(days):
        run = run + 1 if previous is not None and day - previous == one_day else 1
        longest = max(longest, run)
        previous = day

    return Streaks(current=current, longest=longest)


# Year in review

@dataclass
class GenreShare:
    name: str
    count: int
    percentage: int


@dataclass
class YearInReview:
    year: int
    total_movies: int
    total_hours: int
    average_rating: float
    rating_distribution: dict[int, int]
    top_genres: list[GenreShare] = field(default_factory=list)
    favorite_director: str | None = None
    most_watched_month: tuple[str, int] | None = None
    most_watched_decade: tuple[int, int] | None = None
    top_rated: tuple[str, float] | None = None
    reviews_written: int = 0
    longest_streak: int = 0
    milestones: list[str] = field(default_factory=list)


def year_in_review(
    records: Iterable[WatchRecord],
    movies: dict[int, Movie],
    year: int,
) -> YearInReview | None:
    """
    Summarize the movies watched during `year`.

    Only watched records whose watch date falls in the year count. `movies`
    holds catalog details for those records; records whose details are
    missing still count toward totals and ratings but not toward hours,
    genres, directors or decades. Returns None for a year with nothing watched.
    """
    year_records = [
        r for r in _watched(records)
        if r.watched_at is not None and r.watched_at.year == year
    ]
    if not year_records:
        return None

    total = len(year_records)
    details = [movies[r.movie_id] for r in year_records if r.movie_id in movies]

    total_hours = sum(m.runtime or DEFAULT_RUNTIME for m in details) / 60

    rated = [r for r in year_records if r.rating is not None]
    average_rating = round(sum(r.rating for r in rated) / len(rated), 1) if rated else 0.0

    # Half stars fall into the bucket below
    rating_distribution = {stars: 0 for stars in range(1, 6)}
    for r in rated:
        rating_distribution[int(r.rating)] += 1

    genre_counts = Counter(g for m in details for g in m.genres)
    top_genres = [
        GenreShare(name, count, _round_half_up(count / total * 100))
        for name, count in genre_counts.most_common(TOP_GENRES)
    ]

    director_counts = Counter(d for m in details for d in m.directors)
    favorite_director = director_counts.most_common(1)[0][0] if director_counts else None

    month_counts = Counter(MONTH_NAMES[r.watched_at.month - 1] for r in year_records)
    most_watched_month = month_counts.most_common(1)[0]

    decade_counts = Counter(m.decade for m in details if m.decade is not None)
    most_watched_decade = decade_counts.most_common(1)[0] if decade_counts else None

    top_rated = None
    if rated:
        best = max(rated, key=lambda r: r.rating)
        movie = movies.get(best.movie_id)
        top_rated = (movie.title if movie else f"movie {best.movie_id}", best.rating)

    reviews = sum(1 for r in year_records if r.review)

    milestones = []
    if total >= MILESTONE_MOVIES:
        milestones.append(f"Watched {total} movies")
    if total_hours >= MILESTONE_HOURS:
        milestones.append(f"Spent {_round_half_up(total_hours)} hours watching")
    if len(rated) >= MILESTONE_RATINGS:
        milestones.append(f"Rated {len(rated)} movies")
    if reviews >= MILESTONE_REVIEWS:
        milestones.append(f"Wrote {reviews} reviews")

    return YearInReview(
        year=year,
        total_movies=total,
        total_hours=_round_half_up(total_hours),
        average_rating=average_rating,
        rating_distribution=rating_distribution,
        top_genres=top_genres,
        favorite_director=favorite_director,
        most_watched_month=most_watched_month,
        most_watched_decade=most_watched_decade,
        top_rated=top_rated,
        reviews_written=reviews,
        longest_streak=watch_streaks(year_records).longest,
        milestones=milestones,
    )


# Badges

@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    category: str
    rarity: str
    criterion: str
    threshold: int
    genre: str | None = None


BADGES = (
    Badge('first_movie', 'First Steps', 'Watch your first movie', 'movies', 'common', 'movies_watched', 1),
    Badge('movie_buff', 'Movie Buff', 'Watch 25 movies', 'movies', 'rare', 'movies_watched', 25),
    Badge('cinema_addict', 'Cinema Addict', 'Watch 100 movies', 'movies', 'epic', 'movies_watched', 100),
    Badge('horror_fan', 'Horror Enthusiast', 'Watch 10 horror movies', 'movies', 'rare', 'genre_count', 10,
          genre='Horror'),
    Badge('week_streak', 'Weekly Warrior', 'Watch movies for 7 consecutive days', 'streaks', 'rare',
          'streak_days', 7),
    Badge('month_streak', 'Monthly Master', 'Watch movies for 30 consecutive days', 'streaks', 'epic',
          'streak_days', 30),
    Badge('first_review', 'Critic in Training', 'Write your first review', 'reviews', 'common',
          'reviews_written', 1),
    Badge('prolific_reviewer', 'Prolific Reviewer', 'Write 50 reviews', 'reviews', 'epic', 'reviews_written', 50),
    Badge('list_creator', 'List Master', 'Create 10 movie lists', 'lists', 'rare', 'lists_created', 10),
    Badge('social_butterfly', 'Social Butterfly', 'Get 100 followers', 'social', 'epic', 'followers_gained', 100),
)


@dataclass
class BadgeCounters:
    movies_watched: int = 0
    reviews_written: int = 0
    lists_created: int = 0
    streak_days: int = 0
    followers_gained: int = 0
    genre_counts: dict[str, int] = field(default_factory=dict)

    def value_for(self, badge: Badge) -> int:
        if badge.criterion == 'genre_count':
            return self.genre_counts.get(badge.genre, 0)
        return getattr(self, badge.criterion)


@dataclass
class BadgeProgress:
    badge: Badge
    value: int

    @property
    def progress(self) -> float:
        return min(self.value / self.badge.threshold, 1.0)

    @property
    def earned(self) -> bool:
        return self.value >= self.badge.threshold


def badge_counters(
    records: Iterable[WatchRecord],
    movies: dict[int, Movie] | None = None,
    lists_created: int = 0,
    followers: int = 0,
    today: date | None = None,
) -> BadgeCounters:
    """
    Tally the values badge criteria are checked against.

    Streak badges use the longest streak so a badge stays earned after the
    streak ends. Genre counts need catalog details; without `movies` they are 0.
    """
    records = list(records)
    watched = _watched(records)
    movies = movies or {}

    return BadgeCounters(
        movies_watched=len(watched),
        reviews_written=sum(1 for r in watched if r.review),
        lists_created=lists_created,
        streak_days=watch_streaks(records, today).longest,
        followers_gained=followers,
        genre_counts=dict(Counter(g for r in watched if r.movie_id in movies for g in movies[r.movie_id].genres)),
    )


def evaluate_badges(counters: BadgeCounters, badges: Iterable[Badge] = BADGES) -> list[BadgeProgress]:
    return [BadgeProgress(badge, counters.value_for(badge)) for badge in badges]


def check_and_award_badges(
    user_id: str,
    movies: dict[int, Movie] | None = None,
    today: date | None = None,
) -> list[Badge]:
    """
    Award every badge the user now qualifies for but has not yet earned.

    Each new badge is stored and posted to the activity feed. Returns the
    newly awarded badges.
    """
    counters = badge_counters(
        load_watch_records(user_id),
        movies,
        lists_created=len(get_user_lists(user_id)),
        followers=len(get_followers(user_id)),
        today=today,
    )
    already = get_user_badges(user_id)

    awarded = []
    for progress in evaluate_badges(counters):
        if not progress.earned or progress.badge.id in already:
            continue
        if award_badge(user_id, progress.badge.id):
            add_activity(user_id, 'badge_earned', badge_id=progress.badge.id)
            awarded.append(progress.badge)

    if awarded:
        logger.info(f"{user_id} earned {len(awarded)} new badge(s): {', '.join(b.id for b in awarded)}")
    return awarded

import sqlite3
import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from .config import DB_PATH
from .models import WatchRecord, WatchStatus

logger = logging.getLogger(__name__)


def parse_timestamp_naive(timestamp_str: str) -> datetime:
    """
    Parse ISO format timestamp string to naive datetime.

    Always returns a naive datetime so stored values compare consistently
    regardless of whether they were written with timezone info.
    """
    dt = datetime.fromisoformat(timestamp_str)
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


class ConnectionPool:
    """
    Per-thread SQLite connections with transaction nesting depth.

    SQLite connections must not be shared across threads, so each thread
    gets its own, opened lazily and kept until `close_all`.
    """

    def __init__(self, db_path):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._depth: dict[int, int] = {}

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def get_connection(self) -> sqlite3.Connection:
        thread_id = threading.get_ident()
        with self._lock:
            conn = self._connections.get(thread_id)
            if conn is None:
                conn = self._connections[thread_id] = self._connect()
                logger.debug(f"Opened {self._db_path} for thread {thread_id}")
            return conn

    def enter(self) -> bool:
        """Bump this thread's nesting depth. True for the outermost context."""
        thread_id = threading.get_ident()
        with self._lock:
            depth = self._depth.get(thread_id, 0)
            self._depth[thread_id] = depth + 1
        return depth == 0

    def exit(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._depth[thread_id] = max(0, self._depth.get(thread_id, 1) - 1)

    def close_all(self):
        with self._lock:
            for thread_id, conn in self._connections.items():
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for thread {thread_id}: {e}")
            self._connections.clear()
            self._depth.clear()


_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def init_db() -> None:
    DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS watch_records (
                user_id TEXT NOT NULL,
                movie_id INTEGER NOT NULL,
                status TEXT NOT NULL,
                rating REAL,
                review TEXT,
                watched_at TEXT,
                watch_count INTEGER DEFAULT 0,
                tags TEXT,          -- JSON list
                is_favorite INTEGER DEFAULT 0,
                updated_at TEXT,
                PRIMARY KEY (user_id, movie_id)
            );
            CREATE INDEX IF NOT EXISTS idx_watch_records_status ON watch_records(user_id, status);

            CREATE TABLE IF NOT EXISTS activities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                type TEXT NOT NULL,
                movie_id INTEGER,
                list_id INTEGER,
                target_user_id TEXT,
                rating REAL,
                review TEXT,
                badge_id TEXT,
                created_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_activities_user ON activities(user_id, created_at);

            CREATE TABLE IF NOT EXISTS follows (
                follower_id TEXT NOT NULL,
                following_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (follower_id, following_id)
            );

            CREATE TABLE IF NOT EXISTS movie_lists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT DEFAULT '',
                is_public INTEGER DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS list_movies (
                list_id INTEGER NOT NULL REFERENCES movie_lists(id),
                movie_id INTEGER NOT NULL,
                position INTEGER NOT NULL,
                PRIMARY KEY (list_id, movie_id)
            );

            CREATE TABLE IF NOT EXISTS user_badges (
                user_id TEXT NOT NULL,
                badge_id TEXT NOT NULL,
                earned_at TEXT NOT NULL,
                PRIMARY KEY (user_id, badge_id)
            );

            CREATE TABLE IF NOT EXISTS conversations (
                user_id TEXT NOT NULL,
                session_id TEXT NOT NULL,
                messages TEXT NOT NULL,  -- JSON list of {role, content, timestamp}
                updated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, session_id)
            );

            CREATE TABLE IF NOT EXISTS content_analyses (
                movie_id INTEGER PRIMARY KEY,
                analysis TEXT NOT NULL,  -- JSON object
                analyzed_at TEXT NOT NULL
            );
        """)


def _get_pool() -> ConnectionPool:
    """Get or create the global connection pool."""
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                DB_PATH.parent.mkdir(exist_ok=True, parents=True)
                _pool = ConnectionPool(DB_PATH)
    return _pool


@contextmanager
def get_db(read_only: bool = False):
    """
    Get database connection with proper transaction handling.

    Args:
        read_only: If True, skip commit on exit

    Only the outermost context commits or rolls back; nested contexts are
    no-ops for transaction control.
    """
    pool = _get_pool()
    conn = pool.get_connection()
    is_outermost = pool.enter()

    try:
        yield conn
        if is_outermost and not read_only:
            conn.commit()
    except Exception:
        if is_outermost:
            conn.rollback()
        raise
    finally:
        pool.exit()


def close_pool():
    """Close the connection pool. Call on application shutdown."""
    global _pool
    if _pool is not None:
        _pool.close_all()
        _pool = None


def load_json(val):
    """Safely load a JSON list from a db field."""
    if not val:
        return []
    if isinstance(val, list):
        return val
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{str(val)[:50]}...': {e}")
        return []


def _now() -> str:
    return datetime.now().isoformat()


def _row_to_record(row: sqlite3.Row) -> WatchRecord:
    return WatchRecord(
        user_id=row['user_id'],
        movie_id=row['movie_id'],
        status=WatchStatus(row['status']),
        rating=row['rating'],
        review=row['review'],
        watched_at=parse_timestamp_naive(row['watched_at']) if row['watched_at'] else None,
        watch_count=row['watch_count'] or 0,
        tags=load_json(row['tags']),
        is_favorite=bool(row['is_favorite']),
    )


# Watch records

def get_watch_record(user_id: str, movie_id: int) -> WatchRecord | None:
    with get_db(read_only=True) as conn:
        row = conn.execute(
            "SELECT * FROM watch_records WHERE user_id = ? AND movie_id = ?",
            (user_id, movie_id),
        ).fetchone()
    return _row_to_record(row) if row else None


def upsert_watch_record(
    user_id: str,
    movie_id: int,
    status: WatchStatus | str | None = None,
    rating: float | None = None,
    review: str | None = None,
    tags: list[str] | None = None,
    is_favorite: bool | None = None,
    watched_at: datetime | None = None,
) -> WatchRecord:
    """
    Create the (user, movie) record on first interaction, mutate it afterwards.

    Arguments left as None keep their stored value. Logging a movie as
    watched bumps the repeat-watch counter and the watched timestamp.
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM watch_records WHERE user_id = ? AND movie_id = ?",
            (user_id, movie_id),
        ).fetchone()

        if row:
            record = _row_to_record(row)
        else:
            record = WatchRecord(user_id=user_id, movie_id=movie_id, status=status or WatchStatus.WATCHED)

        if status is not None:
            record.status = WatchStatus(status)
            if record.status == WatchStatus.WATCHED:
                record.watch_count += 1
                record.watched_at = watched_at or datetime.now()
        elif not row and record.status == WatchStatus.WATCHED:
            record.watch_count = 1
            record.watched_at = watched_at or datetime.now()

        if rating is not None:
            if not 1 <= rating <= 5:
                raise ValueError(f"Rating must be between 1 and 5 stars, got {rating}")
            record.rating = rating
        if review is not None:
            record.review = review
        if tags is not None:
            record.tags = list(dict.fromkeys(tags))
        if is_favorite is not None:
            record.is_favorite = is_favorite

        conn.execute("""
            INSERT OR REPLACE INTO watch_records
                (user_id, movie_id, status, rating, review, watched_at, watch_count, tags, is_favorite, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.user_id,
            record.movie_id,
            record.status.value,
            record.rating,
            record.review,
            record.watched_at.isoformat() if record.watched_at else None,
            record.watch_count,
            json.dumps(record.tags),
            int(record.is_favorite),
            _now(),
        ))

    return record


def load_watch_records(
    user_id: str,
    status: WatchStatus | str | None = None,
    include_removed: bool = False,
) -> list[WatchRecord]:
    """Load a user's records, most recently watched first. Tombstones are hidden by default."""
    query = "SELECT * FROM watch_records WHERE user_id = ?"
    params: list = [user_id]
    if status is not None:
        query += " AND status = ?"
        params.append(WatchStatus(status).value)
    elif not include_removed:
        query += " AND status != ?"
        params.append(WatchStatus.REMOVED.value)
    query += " ORDER BY watched_at IS NULL, watched_at DESC, updated_at DESC"

    with get_db(read_only=True) as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_record(row) for row in rows]


def remove_watch_record(user_id: str, movie_id: int) -> bool:
    """Tombstone a record. Returns False if the user never logged the movie."""
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE watch_records SET status = ?, updated_at = ? WHERE user_id = ? AND movie_id = ?",
            (WatchStatus.REMOVED.value, _now(), user_id, movie_id),
        )
        return cursor.rowcount > 0


def load_user_ids() -> list[str]:
    with get_db(read_only=True) as conn:
        rows = conn.execute("SELECT DISTINCT user_id FROM watch_records ORDER BY user_id").fetchall()
    return [row['user_id'] for row in rows]


# Activity feed

def add_activity(
    user_id: str,
    activity_type: str,
    movie_id: int | None = None,
    list_id: int | None = None,
    target_user_id: str | None = None,
    rating: float | None = None,
    review: str | None = None,
    badge_id: str | None = None,
) -> int:
    with get_db() as conn:
        cursor = conn.execute("""
            INSERT INTO activities (user_id, type, movie_id, list_id, target_user_id, rating, review, badge_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (user_id, activity_type, movie_id, list_id, target_user_id, rating, review, badge_id, _now()))
        return cursor.lastrowid


def get_activities(user_id: str | None = None, limit: int = 20) -> list[dict]:
    with get_db(read_only=True) as conn:
        if user_id:
            rows = conn.execute(
                "SELECT * FROM activities WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM activities ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
    return [dict(row) for row in rows]


# Social graph

def follow(follower_id: str, following_id: str) -> bool:
    if follower_id == following_id:
        raise ValueError("Users cannot follow themselves")
    with get_db() as conn:
        cursor = conn.execute(
            "INSERT OR IGNORE INTO follows (follower_id, following_id, created_at) VALUES (?, ?, ?)",
            (follower_id, following_id, _now()),
        )
        return cursor.rowcount > 0


def unfollow(follower_id: str, following_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM follows WHERE follower_id = ? AND following_id = ?",
            (follower_id, following_id),
        )
        return cursor.rowcount > 0


def get_following(user_id: str) -> list[str]:
    with get_db(read_only=True) as conn:
        rows = conn.execute(
            "SELECT following_id FROM follows WHERE follower_id = ? ORDER BY created_at",
            (user_id,),
        ).fetchall()
    return [row['following_id'] for row in rows]


def get_followers(user_id: str) -> list[str]:
    with get_db(read_only=True) as conn:
        rows = conn.execute(
            "SELECT follower_id FROM follows WHERE following_id = ? ORDER BY created_at",
            (user_id,),
        ).fetchall()
    return [row['follower_id'] for row in rows]


# Movie lists

def create_list(user_id: str, name: str, description: str = "", is_public: bool = True) -> int:
    if not name or not name.strip():
        raise ValueError("List name must not be empty")
    now = _now()
    with get_db() as conn:
        cursor = conn.execute("""
            INSERT INTO movie_lists (user_id, name, description, is_public, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (user_id, name.strip(), description, int(is_public), now, now))
        return cursor.lastrowid


def add_to_list(list_id: int, movie_id: int) -> bool:
    """Append a movie to a list. Returns False if it was already there."""
    with get_db() as conn:
        if conn.execute("SELECT 1 FROM movie_lists WHERE id = ?", (list_id,)).fetchone() is None:
            raise ValueError(f"No list with id {list_id}")
        position = conn.execute(
            "SELECT COALESCE(MAX(position), 0) + 1 FROM list_movies WHERE list_id = ?",
            (list_id,),
        ).fetchone()[0]
        cursor = conn.execute(
            "INSERT OR IGNORE INTO list_movies (list_id, movie_id, position) VALUES (?, ?, ?)",
            (list_id, movie_id, position),
        )
        if cursor.rowcount:
            conn.execute("UPDATE movie_lists SET updated_at = ? WHERE id = ?", (_now(), list_id))
        return cursor.rowcount > 0


def get_user_lists(user_id: str) -> list[dict]:
    with get_db(read_only=True) as conn:
        lists = [dict(row) for row in conn.execute(
            "SELECT * FROM movie_lists WHERE user_id = ? ORDER BY updated_at DESC, id DESC",
            (user_id,),
        )]
        for entry in lists:
            entry['movies'] = [row['movie_id'] for row in conn.execute(
                "SELECT movie_id FROM list_movies WHERE list_id = ? ORDER BY position",
                (entry['id'],),
            )]
            entry['is_public'] = bool(entry['is_public'])
    return lists


# Badges

def award_badge(user_id: str, badge_id: str) -> bool:
    """Record a badge as earned. Returns False if the user already has it."""
    with get_db() as conn:
        cursor = conn.execute(
            "INSERT OR IGNORE INTO user_badges (user_id, badge_id, earned_at) VALUES (?, ?, ?)",
            (user_id, badge_id, _now()),
        )
        return cursor.rowcount > 0


def get_user_badges(user_id: str) -> dict[str, datetime]:
    with get_db(read_only=True) as conn:
        rows = conn.execute(
            "SELECT badge_id, earned_at FROM user_badges WHERE user_id = ? ORDER BY earned_at, badge_id",
            (user_id,),
        ).fetchall()
    return {row['badge_id']: parse_timestamp_naive(row['earned_at']) for row in rows}


# Conversations

def save_conversation(user_id: str, session_id: str, messages: list[dict]) -> None:
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO conversations (user_id, session_id, messages, updated_at)
            VALUES (?, ?, ?, ?)
        """, (user_id, session_id, json.dumps(messages), _now()))


def load_conversation(user_id: str, session_id: str) -> list[dict] | None:
    with get_db(read_only=True) as conn:
        row = conn.execute(
            "SELECT messages FROM conversations WHERE user_id = ? AND session_id = ?",
            (user_id, session_id),
        ).fetchone()
    return load_json(row['messages']) if row else None


def delete_conversation(user_id: str, session_id: str) -> None:
    with get_db() as conn:
        conn.execute(
            "DELETE FROM conversations WHERE user_id = ? AND session_id = ?",
            (user_id, session_id),
        )


# Content analyses

def store_content_analysis(movie_id: int, analysis: dict) -> None:
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO content_analyses (movie_id, analysis, analyzed_at)
            VALUES (?, ?, ?)
        """, (movie_id, json.dumps(analysis), _now()))


def load_content_analysis(movie_id: int) -> dict | None:
    with get_db(read_only=True) as conn:
        row = conn.execute(
            "SELECT analysis FROM content_analyses WHERE movie_id = ?",
            (movie_id,),
        ).fetchone()
    if not row:
        return None
    try:
        return json.loads(row['analysis'])
    except json.JSONDecodeError as e:
        logger.warning(f"Corrupt cached analysis for movie {movie_id}: {e}")
        return None

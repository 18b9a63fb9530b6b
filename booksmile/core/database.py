from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Dict, Generator
import threading
import redis
from .config import settings

db_url = settings.get_database_url

if db_url.startswith("sqlite"):
    # SQLite is only used for local runs and tests; sessions cross threads there
    engine = create_engine(db_url, connect_args={"check_same_thread": False})
else:
    # PostgreSQL database setup with appropriate connection pool settings
    engine = create_engine(
        db_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Redis setup - mock for testing
if settings.TESTING:
    class LockMock:
        """Thread-lock backed stand-in for ``redis.lock.Lock``."""

        def __init__(self, lock: threading.Lock, name: str, blocking_timeout=None):
            self._lock = lock
            self.name = name
            self.blocking_timeout = blocking_timeout

        def acquire(self, blocking=True, blocking_timeout=None):
            timeout = blocking_timeout if blocking_timeout is not None else self.blocking_timeout
            if not blocking:
                return self._lock.acquire(blocking=False)
            if timeout is None:
                return self._lock.acquire()
            return self._lock.acquire(timeout=timeout)

        def release(self):
            self._lock.release()

        def __enter__(self):
            if self.acquire():
                return self
            raise redis.exceptions.LockError("Unable to acquire lock within the time specified")

        def __exit__(self, exc_type, exc_value, traceback):
            self.release()

    # Use a simple dict-based mock for Redis in tests
    class RedisMock:
        def __init__(self):
            self.data = {}
            self._locks: Dict[str, threading.Lock] = {}
            self._locks_guard = threading.Lock()

        def setex(self, key, time, value):
            self.data[key] = value
            return True

        def get(self, key):
            return self.data.get(key)

        def delete(self, key):
            if key in self.data:
                del self.data[key]
            return 1

        def incr(self, key):
            try:
                self.data[key] = str(int(self.data.get(key, 0)) + 1)
            except (TypeError, ValueError):
                self.data[key] = "1"
            return int(self.data[key])

        def lock(self, name, timeout=None, blocking_timeout=None):
            with self._locks_guard:
                lock = self._locks.setdefault(name, threading.Lock())
            return LockMock(lock, name, blocking_timeout=blocking_timeout)

        def flushall(self):
            self.data.clear()
            return True

    redis_client = RedisMock()
else:
    # Real Redis client for production
    redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Redis dependency
def get_redis():
    """Get Redis client."""
    return redis_client

# Database initialization
def init_db():
    """Initialize database tables."""
    # Register every model on Base.metadata before creating tables
    from .. import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

import logging
from datetime import datetime, timezone
from typing import Generator, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool

from messagely.config import settings

logger = logging.getLogger(__name__)

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")
_is_memory = _is_sqlite and (settings.DATABASE_URL in ("sqlite://", "sqlite:///") or ":memory:" in settings.DATABASE_URL)

_engine_kwargs = {}
if _is_sqlite:
    # check_same_thread=False is required for SQLite to work with FastAPI's threadpool
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
if _is_memory:
    # One shared connection, otherwise every checkout sees an empty database
    _engine_kwargs["poolclass"] = StaticPool

engine = create_engine(settings.DATABASE_URL, echo=False, **_engine_kwargs)

if _is_sqlite:
    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        # SQLite ignores REFERENCES clauses unless this is set per connection
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

REQUIRED_TABLES = ("users", "messages")

# Signed 64-bit INTEGER range; ids outside it cannot exist in the table
MIN_MESSAGE_ID = -(2 ** 63)
MAX_MESSAGE_ID = 2 ** 63 - 1


def is_storable_id(message_id: int) -> bool:
    """True if message_id fits the messages.id column."""
    return MIN_MESSAGE_ID <= message_id <= MAX_MESSAGE_ID


def utc_now_iso() -> str:
    """Current server time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from messagely import models  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and both tables exist, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

        inspector = inspect(engine)
        for table in REQUIRED_TABLES:
            if not inspector.has_table(table):
                logger.error(f"Database schema not applied: '{table}' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Message Repository Functions
# =============================================================================

_SELECT_MESSAGE_DETAIL = text(
    """
    SELECT m.id, m.body, m.sent_at, m.read_at,
           f.username AS from_username, f.first_name AS from_first_name,
           f.last_name AS from_last_name, f.phone AS from_phone,
           t.username AS to_username, t.first_name AS to_first_name,
           t.last_name AS to_last_name, t.phone AS to_phone
    FROM messages AS m
    JOIN users AS f ON m.from_username = f.username
    JOIN users AS t ON m.to_username = t.username
    WHERE m.id = :message_id
    """
)

_INSERT_MESSAGE = text(
    """
    INSERT INTO messages (from_username, to_username, body, sent_at)
    VALUES (:from_username, :to_username, :body, :sent_at)
    RETURNING id, from_username, to_username, body, sent_at
    """
)

_SELECT_MESSAGE_RECIPIENT = text(
    "SELECT to_username FROM messages WHERE id = :message_id"
)

_UPDATE_MESSAGE_READ_AT = text(
    "UPDATE messages SET read_at = :read_at WHERE id = :message_id"
)


def get_message_detail(db: Session, message_id: int) -> Optional[dict]:
    """
    Retrieve a message joined with its sender and recipient.

    Args:
        db: Database session
        message_id: Message identifier to look up

    Returns:
        Flat row dict (from_* and to_* columns per participant), or None
    """
    logger.info(f"Looking up message detail: id={message_id}")
    row = db.execute(_SELECT_MESSAGE_DETAIL, {"message_id": message_id}).mappings().first()
    logger.info(f"Message lookup result: {'found' if row else 'not found'}")
    return dict(row) if row is not None else None


def insert_message(
    db: Session,
    from_username: str,
    to_username: str,
    body: str,
    sent_at: str,
) -> dict:
    """
    Insert a new message and return the stored row.

    Foreign key violations (unknown to_username) are not handled here;
    the IntegrityError propagates to the caller.

    Returns:
        Dict with id, from_username, to_username, body, sent_at
    """
    logger.info(f"Creating message: from={from_username}, to={to_username}")
    logger.debug(f"Message details: sent_at={sent_at}, body length={len(body)}")

    row = db.execute(
        _INSERT_MESSAGE,
        {
            "from_username": from_username,
            "to_username": to_username,
            "body": body,
            "sent_at": sent_at,
        },
    ).mappings().one()
    created = dict(row)
    db.commit()

    logger.info(f"Message created successfully: {created['id']}")
    return created


def get_message_recipient(db: Session, message_id: int) -> Optional[str]:
    """Return the recipient username of a message, or None if it does not exist."""
    logger.info(f"Looking up message recipient: id={message_id}")
    return db.execute(_SELECT_MESSAGE_RECIPIENT, {"message_id": message_id}).scalar_one_or_none()


def set_message_read_at(db: Session, message_id: int, read_at: str) -> None:
    """
    Stamp read_at on a message.

    The update is unconditional: an already-read message is re-stamped.
    """
    logger.info(f"Marking message read: id={message_id}, read_at={read_at}")
    db.execute(_UPDATE_MESSAGE_READ_AT, {"message_id": message_id, "read_at": read_at})
    db.commit()

import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, text, func, update
from sqlalchemy.orm import sessionmaker, Session, declarative_base, joinedload

from smsrelay.config import settings

logger = logging.getLogger(__name__)

# Create SQLAlchemy engine with SQLite-specific settings
# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

REQUIRED_TABLES = ("devices", "sms_batches", "sms")

COUNTER_COLUMNS = ("sent_sms_count", "received_sms_count")


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from smsrelay import models  # noqa: F401

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
        True if DB is healthy and every gateway table exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

            for table in REQUIRED_TABLES:
                result = db.execute(
                    text("SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name=:name"),
                    {"name": table},
                ).scalar()
                if result == 0:
                    logger.error(f"Database schema not applied: '{table}' table not found")
                    return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Device Repository Functions
# =============================================================================

def find_device(db: Session, device_id: str):
    """Return the device with the given id, or None."""
    from smsrelay.models import Device

    return db.get(Device, device_id)


def find_device_by_identity(db: Session, owner_id: str, model: Optional[str], build_id: Optional[str]):
    """Return the device registered by owner with this (model, build_id), or None."""
    from smsrelay.models import Device

    return (
        db.query(Device)
        .filter(
            Device.owner_id == owner_id,
            Device.model == model,
            Device.build_id == build_id,
        )
        .first()
    )


def list_devices(db: Session, owner_id: str) -> list:
    from smsrelay.models import Device

    return db.query(Device).filter(Device.owner_id == owner_id).order_by(Device.created_at.asc()).all()


def increment_device_counter(db: Session, device_id: str, counter: str, amount: int) -> None:
    """
    Atomically add amount to one of the device usage counters.

    The increment is a single UPDATE ... SET col = col + :amount statement, so
    concurrent increments from different requests commute without locking.
    """
    from smsrelay.models import Device

    if counter not in COUNTER_COLUMNS:
        raise ValueError(f"Unknown device counter: {counter}")

    column = getattr(Device, counter)
    db.execute(
        update(Device)
        .where(Device.id == device_id)
        .values({counter: func.coalesce(column, 0) + amount})
    )
    db.commit()
    logger.debug(f"Incremented {counter} by {amount} for device {device_id}")


# =============================================================================
# SMS Repository Functions
# =============================================================================

def get_received_sms(db: Session, device_id: str, limit: int) -> list:
    """
    Retrieve the most recent received SMS for a device, newest first.

    Args:
        db: Database session
        device_id: Device the messages were received on
        limit: Maximum number of messages to return

    Returns:
        List of SMS objects with their device relationship loaded
    """
    from smsrelay.models import SMS, SMSType

    logger.info(f"Querying received SMS: device={device_id}, limit={limit}")

    messages = (
        db.query(SMS)
        .options(joinedload(SMS.device))
        .filter(SMS.device_id == device_id, SMS.type == SMSType.RECEIVED)
        .order_by(SMS.received_at.desc())
        .limit(limit)
        .all()
    )
    logger.info(f"Retrieved {len(messages)} received SMS for device {device_id}")
    return messages


def count_owner_sms_since(db: Session, owner_id: str, sms_type, since: str) -> int:
    """Count SMS units of one direction created on the owner's devices since a timestamp."""
    from smsrelay.models import Device, SMS

    return (
        db.query(func.count(SMS.id))
        .join(Device, SMS.device_id == Device.id)
        .filter(
            Device.owner_id == owner_id,
            SMS.type == sms_type,
            SMS.created_at >= since,
        )
        .scalar()
        or 0
    )


def get_stats(db: Session, owner_id: str) -> dict:
    """
    Get usage statistics across every device of an owner.

    Computes:
    - total_sent_sms_count: sum of device sent counters
    - total_received_sms_count: sum of device received counters
    - total_device_count: number of registered devices

    Returns:
        Dictionary with stats data
    """
    from smsrelay.models import Device

    logger.info(f"Computing statistics for owner {owner_id}")

    row = (
        db.query(
            func.coalesce(func.sum(Device.sent_sms_count), 0),
            func.coalesce(func.sum(Device.received_sms_count), 0),
            func.count(Device.id),
        )
        .filter(Device.owner_id == owner_id)
        .one()
    )

    stats = {
        "total_sent_sms_count": int(row[0]),
        "total_received_sms_count": int(row[1]),
        "total_device_count": int(row[2]),
    }
    logger.debug(f"Stats result: {stats}")
    return stats

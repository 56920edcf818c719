"""
Database models and operations for DockPilot
Uses SQLite for persistent storage of update schedules and history
"""

from datetime import datetime, timezone
from typing import Any
from sqlalchemy import create_engine, Column, String, DateTime, JSON
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.pool import StaticPool
import os
import logging

from updates.collaborators import ConfigStore

logger = logging.getLogger(__name__)


def utcnow():
    """Helper to get timezone-aware UTC datetime for database defaults"""
    return datetime.now(timezone.utc)


Base = declarative_base()


class ConfigEntry(Base):
    """Key/value configuration (updateSchedules, updateHistory, ...)"""
    __tablename__ = "config_entries"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class DatabaseManager:
    """Database connection and session management"""

    def __init__(self, db_path: str = "data/dockpilot.db"):
        self.db_path = db_path

        if db_path == ":memory:":
            url = "sqlite://"
        else:
            # Ensure data directory exists
            data_dir = os.path.dirname(db_path)
            if data_dir:
                os.makedirs(data_dir, exist_ok=True)
                try:
                    os.chmod(data_dir, 0o700)
                except OSError as e:
                    logger.warning(f"Could not set permissions on data directory {data_dir}: {e}")
            url = f"sqlite:///{db_path}"

        self.engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": 20
            },
            poolclass=StaticPool,
            echo=False
        )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

        # Create tables
        Base.metadata.create_all(bind=self.engine)
        logger.debug(f"Database ready at {db_path}")

    def get_session(self) -> Session:
        """Get a database session"""
        return self.SessionLocal()


class SQLiteConfigStore(ConfigStore):
    """ConfigStore persisted in the config_entries table."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        with self.db.get_session() as session:
            entry = session.get(ConfigEntry, key)
            if entry is None or entry.value is None:
                return default
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self.db.get_session() as session:
            try:
                entry = session.get(ConfigEntry, key)
                if entry is None:
                    session.add(ConfigEntry(key=key, value=value))
                else:
                    entry.value = value
                    flag_modified(entry, "value")
                    entry.updated_at = utcnow()
                session.commit()
            except Exception as e:
                session.rollback()
                logger.error(f"Failed to save config entry '{key}': {e}")
                raise

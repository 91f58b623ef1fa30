# logging_config.py

import logging
import sqlite3
import sys
from datetime import datetime, timezone
from typing import Optional

MAX_LOG_ENTRIES = 10000  # Maximum number of log entries to keep
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SQLiteHandler(logging.Handler):
    """Keeps the most recent `max_entries` log records in a SQLite table for later inspection."""

    def __init__(self, db_path: str, max_entries: int = MAX_LOG_ENTRIES):
        super().__init__()
        self.db_path = db_path
        self.max_entries = max_entries
        self.create_table()

    def create_table(self):
        """Creates the logs table if it doesn't exist."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    level TEXT NOT NULL,
                    logger TEXT,
                    message TEXT NOT NULL,
                    exception TEXT
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def emit(self, record):
        """Inserts a log record and trims the oldest rows past max_entries."""
        exception = None
        if record.exc_info:
            exception = logging.Formatter().formatException(record.exc_info)
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "exception": exception,
        }
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error:
            self.handleError(record)
            return
        try:
            conn.execute("""
                INSERT INTO logs (timestamp, level, logger, message, exception)
                VALUES (:timestamp, :level, :logger, :message, :exception)
            """, log_entry)
            conn.execute("""
                DELETE FROM logs
                WHERE id <= (SELECT MAX(id) FROM logs) - ?
            """, (self.max_entries,))
            conn.commit()
        except sqlite3.Error:
            self.handleError(record)
        finally:
            conn.close()


def setup_logging(debug: bool = False, db_path: Optional[str] = None):
    """
    Configure the root logger once: console output plus, when `db_path` is set, the SQLite log.
    Calling it again replaces the handlers it installed earlier.
    """
    logger = logging.getLogger()
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_synchookx", False):
            logger.removeHandler(handler)
            handler.close()

    # Console handler for real-time logs
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler._synchookx = True
    logger.addHandler(console_handler)

    # SQLite handler for persistent logs
    if db_path:
        sqlite_handler = SQLiteHandler(db_path=db_path, max_entries=MAX_LOG_ENTRIES)
        sqlite_handler.setLevel(level)
        sqlite_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        sqlite_handler._synchookx = True
        logger.addHandler(sqlite_handler)

    # requests/urllib3 are noisy at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)

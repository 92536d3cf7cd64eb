# backend/core/query_logger.py

import logging
import time
from typing import Any, Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from core.config import get_settings

logger = logging.getLogger("sqlalchemy.engine")
query_logger = logging.getLogger("query_performance")

settings = get_settings()


class QueryLogger:
    """Collects per-engine query timings and flags slow statements"""

    def __init__(self):
        self.enabled = settings.is_development or settings.debug
        self.slow_query_threshold = settings.slow_query_threshold_seconds
        self.query_stats: Dict[str, Any] = {
            "total_queries": 0,
            "slow_queries": 0,
            "total_time": 0.0,
        }

    def log_query_stats(self):
        """Log accumulated query statistics"""
        if not self.enabled:
            return

        total = self.query_stats["total_queries"]
        query_logger.info(
            f"Query statistics: total={total}, "
            f"slow={self.query_stats['slow_queries']}, "
            f"avg={self.query_stats['total_time'] / max(total, 1):.3f}s"
        )


# Singleton instance
query_logger_instance = QueryLogger()


def setup_query_logging(engine: Engine):
    """
    Setup query logging for an SQLAlchemy engine

    SQLite connections always get foreign keys, WAL and explicit BEGIN
    statements (the driver otherwise defers BEGIN until the first write,
    which breaks SAVEPOINT), even when query logging is off.

    Args:
        engine: SQLAlchemy engine instance
    """
    if engine.url.get_backend_name() == "sqlite":

        @event.listens_for(engine, "connect")
        def setup_sqlite_pragma(dbapi_conn, connection_record):
            """Enable foreign keys and WAL for SQLite connections"""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            if engine.url.database not in (None, "", ":memory:"):
                cursor.execute("PRAGMA journal_mode = WAL")
            cursor.close()
            dbapi_conn.isolation_level = None

        @event.listens_for(engine, "begin")
        def begin_sqlite_transaction(conn):
            conn.exec_driver_sql("BEGIN")

    if not query_logger_instance.enabled:
        return

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

        if settings.log_sql_queries:
            logger.debug("Start Query: %s", statement)

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total_time = time.time() - conn.info["query_start_time"].pop(-1)

        query_logger_instance.query_stats["total_queries"] += 1
        query_logger_instance.query_stats["total_time"] += total_time

        if total_time > query_logger_instance.slow_query_threshold:
            query_logger_instance.query_stats["slow_queries"] += 1
            query_logger.warning(
                f"SLOW QUERY ({total_time:.3f}s): {statement[:200]}..."
            )

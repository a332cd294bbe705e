import os
import logging
import psycopg
from typing import Any, Optional
from dotenv import load_dotenv
from constants import Defaults


load_dotenv()

logger = logging.getLogger(__name__)


SUSPICIOUS_PATTERNS = (
    ';', '--', '/*', '*/', 'insert into', 'update ',
    'delete from', 'drop table', 'create table',
    'alter table', 'truncate '
)


def get_db() -> psycopg.Connection:
    """
    Connect to the database whose plans are fetched.
    Only POST /analyze needs it, plan documents do not.
    """

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError(
            "DATABASE_URL is not set, so plans cannot be fetched; "
            "submit a plan document instead"
        )

    logger.debug("Opening connection for plan retrieval")
    return psycopg.connect(database_url)


def is_safe_query(sql_query: str) -> bool:
    """
    Basic guard before EXPLAIN ANALYZE, which executes
    the statement: only single read queries pass.
    """

    if not sql_query or not sql_query.strip():
        return False

    if len(sql_query) > Defaults.QUERY_LENGTH_LIMIT:
        return False

    lowered = sql_query.strip().rstrip(';').lower()
    if not lowered.startswith(("select", "with")):
        return False

    return not any(
        pattern in lowered for pattern in SUSPICIOUS_PATTERNS
    )


def fetch_execution_plan(
    conn: psycopg.Connection,
    sql_query: str,
    timeout_seconds: Optional[int] = None
) -> Any:
    """Run EXPLAIN (ANALYZE, BUFFERS, FORMAT JSON) under a timeout."""

    if not is_safe_query(sql_query):
        raise ValueError("Only single read-only queries can be analyzed")

    timeout = (
        timeout_seconds or
        int(os.getenv(
            "EXPLAIN_TIMEOUT_SECONDS",
            Defaults.EXPLAIN_TIMEOUT_SECONDS
        ))
    )
    query = sql_query.strip().rstrip(';')

    try:
        # SET LOCAL expires with the transaction, even on failure
        with conn.transaction(), conn.cursor() as cur:
            cur.execute(
                f"SET LOCAL statement_timeout = {int(timeout) * 1000};"
            )
            cur.execute(
                f"EXPLAIN (ANALYZE, BUFFERS, FORMAT JSON) {query}"
            )
            result = cur.fetchone()

    except psycopg.Error as e:
        if "statement timeout" in str(e):
            logger.warning(
                f"Query explanation timed out "
                f"after {timeout} seconds"
            )
        raise

    if not result:
        raise psycopg.Error("Failed to get execution plan for query")

    return result[0]

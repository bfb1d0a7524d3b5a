from __future__ import annotations

import hashlib
import logging
import random
import time

from sqlalchemy import event
from sqlalchemy.engine import Engine

from config import get_settings

SAMPLE_RATE = 0.01

logger = logging.getLogger("kasir.obs")


def add_query_logger(engine: Engine, label: str) -> None:
    """Attach timing-based logging to ``engine``.

    Statements slower than ``slow_query_ms`` are logged as warnings; a small
    sample of the rest is logged at info level. Parameters are hashed, never
    logged verbatim.
    """
    target = engine.sync_engine if hasattr(engine, "sync_engine") else engine
    slow_ms = get_settings().slow_query_ms

    def before_cursor_execute(
        conn, cursor, statement, parameters, context, executemany
    ):  # type: ignore[no-untyped-def]
        context._query_start_time = time.perf_counter()

    def after_cursor_execute(
        conn, cursor, statement, parameters, context, executemany
    ):  # type: ignore[no-untyped-def]
        total_ms = (time.perf_counter() - context._query_start_time) * 1000
        sql = " ".join(statement.split())
        if len(sql) > 200:
            sql = sql[:197] + "..."
        params_hash = hashlib.sha256(repr(parameters).encode()).hexdigest()[:8]
        if total_ms > slow_ms:
            logger.warning(
                "slow query %dms db=%s sql=%s params=%s",
                int(total_ms),
                label,
                sql,
                params_hash,
            )
        elif random.random() < SAMPLE_RATE:
            logger.debug(
                "query %dms db=%s sql=%s params=%s",
                int(total_ms),
                label,
                sql,
                params_hash,
            )

    event.listen(target, "before_cursor_execute", before_cursor_execute)
    event.listen(target, "after_cursor_execute", after_cursor_execute)

# content_swap/db/lock.py

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from loguru import logger
from sqlalchemy import text

from content_swap.ports.database import Database


@dataclass(frozen=True)
class AdvisoryLock:
    """
    Manages PostgreSQL advisory locks using a polling mechanism.

    Used by the CLI to keep two operators from promoting the same group at
    once; the swap engine itself holds no lock of its own. The connection stays
    open (session scope) while the lock is held.
    """
    db: Database
    timeout_s: Optional[float] = 60.0
    poll_s: float = 0.2

    @contextmanager
    def acquire(self, lock_key: str) -> Iterator[None]:
        """
        Acquires a lock, polling until success or timeout.
        """
        # Maintain a persistent connection for the duration of the lock (Session Scope)
        with self.db.connect() as conn:
            lock_sql = text("SELECT pg_try_advisory_lock(hashtext(:k)::bigint)")
            unlock_sql = text("SELECT pg_advisory_unlock(hashtext(:k)::bigint)")

            start_time = time.monotonic()

            # Polling loop: Try to acquire lock non-blockingly
            while True:
                is_acquired = bool(conn.execute(lock_sql, {"k": lock_key}).scalar())
                # Session-level locks survive commit; end the implicit transaction
                conn.commit()

                if is_acquired:
                    break

                # Check for timeout
                if self.timeout_s and (time.monotonic() - start_time) >= self.timeout_s:
                    raise TimeoutError(f"Failed to acquire lock '{lock_key}' after {self.timeout_s}s")

                time.sleep(self.poll_s)

            try:
                logger.info(f"Advisory lock acquired: {lock_key}")
                yield
            finally:
                # Always release the lock using the same connection
                try:
                    conn.execute(unlock_sql, {"k": lock_key})
                    conn.commit()
                    logger.info(f"Advisory lock released: {lock_key}")
                except Exception as e:
                    logger.warning(f"Failed to release lock '{lock_key}': {e}")

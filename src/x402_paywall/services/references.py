# src/x402_paywall/services/references.py
"""At-most-once consumption of payment references."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from x402_paywall.core.errors import StorageError
from x402_paywall.core.settings import settings
from x402_paywall.db.session import SessionLocal, storage_errors
from x402_paywall.db.time import utc_after, utcnow
from x402_paywall.models.reference_claim import ReferenceClaim

logger = logging.getLogger(__name__)

DEFAULT_PURGE_GRACE_SECONDS = 7 * 24 * 3600


class ReferenceGuard:
    """Database-backed registry of consumed references."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def claim(self, reference: str, ttl_seconds: float, *, commit: bool = True) -> bool:
        """Claim ``reference``; return True only the first time it is ever claimed.

        The insert runs in a SAVEPOINT so a primary-key conflict rolls back
        only the claim. With ``commit=False`` the claim joins the caller's
        transaction.
        """
        now = utcnow()
        with storage_errors(self.db):
            try:
                with self.db.begin_nested():
                    self.db.execute(
                        insert(ReferenceClaim).values(
                            reference=reference,
                            claimed_at=now,
                            expires_at=utc_after(ttl_seconds, start=now),
                        )
                    )
            except IntegrityError:
                logger.info("Reference %s already claimed", reference)
                if commit:
                    self.db.rollback()
                return False
            if commit:
                self.db.commit()
        return True

    def is_claimed(self, reference: str) -> bool:
        """Return True if ``reference`` was ever claimed, expired or not."""
        with storage_errors(self.db):
            found = self.db.scalar(
                select(ReferenceClaim.reference).where(ReferenceClaim.reference == reference)
            )
        return found is not None

    def purge_expired(
        self,
        now: datetime | None = None,
        grace_seconds: float = DEFAULT_PURGE_GRACE_SECONDS,
    ) -> int:
        """Delete claims whose expiry passed more than ``grace_seconds`` ago."""
        cutoff = utc_after(-grace_seconds, start=now or utcnow())
        with storage_errors(self.db):
            result = self.db.execute(
                delete(ReferenceClaim).where(ReferenceClaim.expires_at < cutoff)
            )
            self.db.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Purged %d expired reference claims", removed)
        return removed


class ReferencePurgeWorker:
    """Periodically deletes reference claims that are long past expiry.

    Replay protection never depends on this worker; a replayed proof is also
    blocked by the transfer log's signature key.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: float | None = None,
        grace_seconds: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.interval_seconds = (
            settings.reference_purge_interval_seconds if interval_seconds is None else interval_seconds
        )
        self.grace_seconds = (
            settings.reference_purge_grace_seconds if grace_seconds is None else grace_seconds
        )
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    def purge_once(self) -> int:
        with self.session_factory() as db:
            return ReferenceGuard(db).purge_expired(grace_seconds=self.grace_seconds)

    async def start(self) -> None:
        """Start the background purge loop."""
        if self.interval_seconds <= 0:
            logger.info("Reference purge disabled")
            return
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background purge loop."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        interval = max(0.1, float(self.interval_seconds))
        while not self._stopping.is_set():
            try:
                await asyncio.to_thread(self.purge_once)
            except StorageError as exc:
                logger.warning("Reference purge failed: %s", exc)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                continue

"""Account lookup through the read-only explorer indexer."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .errors import IndexUnavailable
from .metrics import INDEX_LOOKUPS_TOTAL
from .networks import index_dsn

logger = logging.getLogger(__name__)

ACCOUNT_BY_PUBLIC_KEY = text(
    "SELECT account_id FROM access_keys WHERE public_key = :public_key LIMIT 1"
)

DEFAULT_TIMEOUT = 15.0


class AccountResolver:
    """Maps a public key to the account holding it.

    One engine is created lazily per network and reused; pass ``dsn`` to
    point every network at a single self-hosted or test index.
    """

    def __init__(self, dsn: str | None = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._dsn = dsn
        self._timeout = timeout
        self._engines: dict[str, AsyncEngine] = {}

    def _dsn_for(self, network: str) -> str:
        return self._dsn or index_dsn(network)

    def _get_engine(self, network: str) -> AsyncEngine:
        dsn = self._dsn_for(network)
        engine = self._engines.get(dsn)
        if engine is None:
            engine = create_async_engine(dsn, pool_pre_ping=True, echo=False)
            self._engines[dsn] = engine
        return engine

    async def _query(self, network: str, public_key: str) -> str | None:
        engine = self._get_engine(network)
        async with engine.connect() as conn:
            result = await conn.execute(ACCOUNT_BY_PUBLIC_KEY, {"public_key": public_key})
            row = result.first()
        return None if row is None else row[0]

    async def resolve_account_by_public_key(self, network: str, public_key: str) -> str | None:
        """Return the account id owning public_key, or None if the index has no match.

        Raises:
            IndexUnavailable: If the index cannot be reached or queried in time

        """
        try:
            account_id = await asyncio.wait_for(
                self._query(network, public_key), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            INDEX_LOOKUPS_TOTAL.labels(result="timeout").inc()
            raise IndexUnavailable(
                f"Account index on {network} timed out after {self._timeout}s"
            ) from e
        except (SQLAlchemyError, OSError) as e:
            INDEX_LOOKUPS_TOTAL.labels(result="error").inc()
            logger.error(f"Account index query failed on {network}: {e!r}")
            raise IndexUnavailable(f"Account index on {network} is unavailable: {e}") from e

        if account_id is None:
            INDEX_LOOKUPS_TOTAL.labels(result="not_found").inc()
            logger.info(f"No account found for key {public_key[:20]}... on {network}")
            return None

        INDEX_LOOKUPS_TOTAL.labels(result="found").inc()
        logger.info(f"Resolved key {public_key[:20]}... to {account_id} on {network}")
        return str(account_id)

    async def dispose(self) -> None:
        """Close every pooled connection."""
        for engine in self._engines.values():
            await engine.dispose()
        self._engines.clear()

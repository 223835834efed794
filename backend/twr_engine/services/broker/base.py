"""
Base broker client providing the HTTP plumbing shared by broker backends.

Features:
- Lazily opened aiohttp session, usable as an async context manager
- Per-client request concurrency bound
- HTTP status to TransportError mapping
- Connection failures and timeouts mapped to NetworkError
"""

from abc import ABC, abstractmethod
import asyncio
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiohttp

from twr_engine.core.config import settings
from twr_engine.core.enums import BrokerType, Granularity
from twr_engine.core.errors.base import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    ServerError,
    TransportError,
)
from twr_engine.core.references import AccountRef, ActivityPage, DateRange, EquitySnapshot


def error_for_status(status: int, message: str, context: Dict[str, Any]) -> TransportError:
    """Map a non-2xx HTTP status to the matching TransportError."""
    context = {**context, "status": status}
    if status in (401, 403):
        return AuthenticationError(message, context=context, status=status)
    if status == 404:
        return NotFoundError(message, context=context, status=status)
    if status >= 500:
        return ServerError(message, context=context, status=status)
    return TransportError(message, context=context, status=status)


class BaseBrokerClient(ABC):
    """
    Base broker implementation.

    Subclasses provide URLs, authentication headers and response parsing;
    this class owns the session and turns transport failures into the
    engine's error taxonomy.
    """

    broker_type: Optional[BrokerType] = None

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        max_concurrent_requests: Optional[int] = None,
        request_timeout: Optional[float] = None,
    ) -> None:
        self.session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(
            total=request_timeout or settings.broker.REQUEST_TIMEOUT
        )
        self._request_semaphore = asyncio.Semaphore(
            max_concurrent_requests or settings.broker.MAX_CONCURRENT_REQUESTS
        )
        self._logger = None

    @property
    def logger(self):
        """Lazy logger initialization."""
        if self._logger is None:
            from twr_engine.core.logging.logger import get_logger
            self._logger = get_logger(self.__class__.__name__)
        return self._logger

    async def __aenter__(self) -> "BaseBrokerClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the HTTP session if it is not already open."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": f"{self.__class__.__name__}/1.0"},
            )
            self._owns_session = True
            self.logger.debug("Opened HTTP session")

    async def close(self) -> None:
        """Close the HTTP session if this client opened it."""
        if not self._owns_session:
            return
        if self.session is not None and not self.session.closed:
            await self.session.close()
            self.logger.debug("Closed HTTP session")
        self.session = None

    @abstractmethod
    def _base_url(self, account: AccountRef) -> str:
        ...

    @abstractmethod
    def _auth_headers(self, account: AccountRef) -> Dict[str, str]:
        ...

    async def _request(
        self,
        account: AccountRef,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Execute a request and return the decoded JSON body.

        Raises:
            AuthenticationError: On 401/403.
            NotFoundError: On 404.
            ServerError: On 5xx.
            NetworkError: On connection failures and timeouts.
        """
        if self.session is None or self.session.closed:
            await self.connect()

        url = f"{self._base_url(account)}{endpoint}"
        context = {"account_id": account.account_id, "endpoint": endpoint}
        try:
            async with self._request_semaphore:
                async with self.session.request(
                    method,
                    url,
                    headers=self._auth_headers(account),
                    params=params,
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise error_for_status(
                            response.status,
                            f"{method} {endpoint} failed with HTTP {response.status}",
                            {**context, "body": body[:500]},
                        )
                    return await response.json()
        except TransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(
                f"{method} {endpoint} failed: {e.__class__.__name__}",
                context=context,
                parent=e,
            ) from e

    # ---- Source interfaces ----

    @abstractmethod
    async def fetch_snapshots(
        self,
        account: AccountRef,
        start: date,
        end: date,
        granularity: Granularity = Granularity.ONE_DAY,
    ) -> List[EquitySnapshot]:
        """Daily equity snapshots for ``account`` between ``start`` and ``end``."""
        ...

    @abstractmethod
    async def fetch_activity_page(
        self,
        account: AccountRef,
        date_range: DateRange,
        page_token: Optional[str],
        page_size: int,
    ) -> ActivityPage:
        """One page of deposit and withdrawal activities, oldest first."""
        ...

    @abstractmethod
    async def current_equity(self, account: AccountRef) -> Decimal:
        """Live account equity."""
        ...

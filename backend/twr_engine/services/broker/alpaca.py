"""
This module provides AlpacaBrokerClient, a concrete BaseBrokerClient for
Alpaca's trading REST API.

AlpacaBrokerClient:
- Uses the live or paper base URL depending on the account.
- Authenticates with the APCA-API-KEY-ID / APCA-API-SECRET-KEY headers.
- Reads portfolio history, cash activities and live account equity.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

import pytz

from twr_engine.core.config import feed_constants, settings
from twr_engine.core.enums import BrokerType, Granularity
from twr_engine.core.errors.base import ValidationError
from twr_engine.core.errors.decorators import error_handler
from twr_engine.core.references import AccountRef, ActivityPage, DateRange, EquitySnapshot
from .base import BaseBrokerClient

ZERO = Decimal("0")


def _decimal_at(values: Sequence[Any], index: int) -> Decimal:
    if index >= len(values) or values[index] is None:
        return ZERO
    try:
        return Decimal(str(values[index]))
    except InvalidOperation:
        raise ValidationError(
            "Invalid numeric value in portfolio history",
            context={"index": index, "value": values[index]},
        )


def parse_portfolio_history(
    payload: Dict[str, Any],
    date_range: DateRange,
    today: date,
    tz: pytz.BaseTzInfo,
) -> List[EquitySnapshot]:
    """
    Convert a portfolio history payload into snapshots.

    The payload holds parallel arrays ``timestamp`` (epoch seconds),
    ``equity``, ``profit_loss`` and ``profit_loss_pct``; null values read
    as zero. Each timestamp is assigned to its exchange-timezone day.
    Days outside ``date_range`` and ``today`` itself are dropped since the
    current day is still open. Later entries win when several fall on one day.
    """
    timestamps = payload.get("timestamp") or []
    equities = payload.get("equity") or []
    pnls = payload.get("profit_loss") or []
    pnl_pcts = payload.get("profit_loss_pct") or []

    by_day: Dict[date, EquitySnapshot] = {}
    for i, ts in enumerate(timestamps):
        if ts is None:
            continue
        day = datetime.fromtimestamp(int(ts), tz=pytz.UTC).astimezone(tz).date()
        if day >= today or not date_range.contains(day):
            continue
        by_day[day] = EquitySnapshot(
            day=day,
            equity=_decimal_at(equities, i),
            pnl=_decimal_at(pnls, i),
            pnl_pct=_decimal_at(pnl_pcts, i),
        )
    return [by_day[day] for day in sorted(by_day)]


class AlpacaBrokerClient(BaseBrokerClient):
    """
    Alpaca client implementing the snapshot, cash-flow and live-balance sources.

    One client serves any number of accounts; credentials are taken from
    the AccountRef on every request.
    """

    broker_type = BrokerType.ALPACA

    def __init__(
        self,
        session=None,
        live_base_url: Optional[str] = None,
        paper_base_url: Optional[str] = None,
        extended_hours: Optional[bool] = None,
        tz: Optional[pytz.BaseTzInfo] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(session=session, **kwargs)
        self.live_base_url = (live_base_url or settings.broker.LIVE_BASE_URL).rstrip("/")
        self.paper_base_url = (paper_base_url or settings.broker.PAPER_BASE_URL).rstrip("/")
        self.extended_hours = (
            settings.broker.EXTENDED_HOURS if extended_hours is None else extended_hours
        )
        self.tz = tz or settings.timezone

    def _base_url(self, account: AccountRef) -> str:
        return self.live_base_url if account.live else self.paper_base_url

    def _auth_headers(self, account: AccountRef) -> Dict[str, str]:
        return {
            "APCA-API-KEY-ID": account.api_key.get_secret_value(),
            "APCA-API-SECRET-KEY": account.api_secret.get_secret_value(),
            "Accept": "application/json",
        }

    @error_handler(
        context_extractor=lambda self, account, start, end, granularity=Granularity.ONE_DAY: {
            "account_id": account.account_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "granularity": granularity.value,
        },
        log_message="Failed to fetch portfolio history",
    )
    async def fetch_snapshots(
        self,
        account: AccountRef,
        start: date,
        end: date,
        granularity: Granularity = Granularity.ONE_DAY,
    ) -> List[EquitySnapshot]:
        payload = await self._request(
            account,
            "GET",
            "/v2/account/portfolio/history",
            params={
                "start": start.isoformat(),
                "end": end.isoformat(),
                "timeframe": granularity.value,
                "extended_hours": "true" if self.extended_hours else "false",
            },
        )
        if not isinstance(payload, dict):
            raise ValidationError(
                "Unexpected portfolio history payload",
                context={"account_id": account.account_id, "payload_type": type(payload).__name__},
            )
        today = datetime.now(self.tz).date()
        snapshots = parse_portfolio_history(payload, DateRange(start=start, end=end), today, self.tz)
        self.logger.debug(
            "Fetched portfolio history",
            account_id=account.account_id,
            snapshot_count=len(snapshots),
        )
        return snapshots

    async def fetch_activity_page(
        self,
        account: AccountRef,
        date_range: DateRange,
        page_token: Optional[str],
        page_size: int,
    ) -> ActivityPage:
        params: Dict[str, Any] = {
            "activity_types": feed_constants.ACTIVITY_TYPES,
            "after": (date_range.start - timedelta(days=1)).isoformat(),
            "until": (date_range.end + timedelta(days=1)).isoformat(),
            "page_size": page_size,
            "direction": feed_constants.LEDGER_DIRECTION,
        }
        if page_token:
            params["page_token"] = page_token
        return await self._request(account, "GET", "/v2/account/activities", params=params)

    @error_handler(
        context_extractor=lambda self, account: {"account_id": account.account_id},
        log_message="Failed to fetch account equity",
    )
    async def current_equity(self, account: AccountRef) -> Decimal:
        payload = await self._request(account, "GET", "/v2/account")
        try:
            return Decimal(str(payload.get("equity") or "0"))
        except (InvalidOperation, AttributeError) as e:
            raise ValidationError(
                "Invalid account equity",
                context={"account_id": account.account_id},
                parent=e,
            )

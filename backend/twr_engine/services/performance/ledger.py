"""
Cash-flow ledger retrieval and netting.

Features:
- Token-based pagination over the activities feed (bare-list and envelope pages)
- Page-count safety cap
- Normalization of raw activities into CashFlowEvent values
- Same-day netting and interval netting helpers
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import pytz

from twr_engine.core.config import settings
from twr_engine.core.enums import ActivityKind
from twr_engine.core.errors.base import ValidationError
from twr_engine.core.errors.decorators import error_handler
from twr_engine.core.logging.logger import get_logger
from twr_engine.core.references import (
    AccountRef,
    ActivityPage,
    ActivityRecord,
    CashFlowEvent,
    CashFlowSource,
    DateRange,
)

logger = get_logger(__name__)

ZERO = Decimal("0")

PageFetcher = Callable[[Optional[str], int], Awaitable[ActivityPage]]


@dataclass
class PaginationResult:
    """Raw records collected by ``paginate_activities``."""
    records: List[ActivityRecord] = field(default_factory=list)
    pages_fetched: int = 0
    capped: bool = False


def split_page(page: ActivityPage) -> Tuple[List[ActivityRecord], Optional[str]]:
    """
    Normalize one ledger page into (records, continuation token).

    A bare list continues from the id of its last element; an envelope
    carries ``next_page_token`` explicitly.
    """
    if isinstance(page, dict):
        records = page.get("activities") or []
        token = page.get("next_page_token")
    elif isinstance(page, list):
        records = page
        token = records[-1].get("id") if records and isinstance(records[-1], dict) else None
    else:
        raise ValidationError(
            "Unsupported ledger page shape",
            context={"page_type": type(page).__name__},
        )
    token = str(token) if token not in (None, "", "null") else None
    return list(records), token


async def paginate_activities(
    fetch_page: PageFetcher,
    page_size: Optional[int] = None,
    max_pages: Optional[int] = None,
) -> PaginationResult:
    """
    Follow continuation tokens until the feed signals completion.

    Stops on the first page shorter than ``page_size`` or without a token.
    After ``max_pages`` pages the loop stops and returns what was collected.
    """
    page_size = page_size or settings.ledger.PAGE_SIZE
    max_pages = max_pages or settings.ledger.MAX_PAGES
    result = PaginationResult()
    token: Optional[str] = None

    while True:
        if result.pages_fetched >= max_pages:
            result.capped = True
            logger.warning(
                "Ledger page cap reached; returning partial activity list",
                pages_fetched=result.pages_fetched,
                record_count=len(result.records),
            )
            break

        page = await fetch_page(token, page_size)
        result.pages_fetched += 1
        records, token = split_page(page)
        result.records.extend(records)

        if len(records) < page_size or not token:
            break

    return result


def _activity_day(record: ActivityRecord, tz: pytz.BaseTzInfo) -> Optional[date]:
    raw_date = record.get("date")
    if raw_date:
        return date.fromisoformat(str(raw_date)[:10])

    raw_time = record.get("transaction_time") or record.get("created_at")
    if not raw_time:
        return None
    moment = datetime.fromisoformat(str(raw_time).replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = pytz.UTC.localize(moment)
    return moment.astimezone(tz).date()


def parse_activity(
    record: ActivityRecord, tz: Optional[pytz.BaseTzInfo] = None
) -> Optional[CashFlowEvent]:
    """
    Convert a raw activity into a CashFlowEvent.

    Returns None for activity types other than deposits and withdrawals
    and for records without a usable date.
    """
    try:
        kind = ActivityKind(record.get("activity_type"))
    except ValueError:
        return None

    day = _activity_day(record, tz or settings.timezone)
    if day is None:
        return None

    amount = record.get("net_amount")
    if amount in (None, ""):
        amount = record.get("amount", 0)

    return CashFlowEvent(
        id=str(record["id"]) if record.get("id") else None,
        day=day,
        kind=kind,
        amount=amount,
    )


def normalize_activities(
    records: Iterable[ActivityRecord],
    date_range: Optional[DateRange] = None,
    tz: Optional[pytz.BaseTzInfo] = None,
) -> List[CashFlowEvent]:
    """Parse, de-duplicate by id, range-filter and sort raw activities."""
    seen_ids = set()
    events: List[CashFlowEvent] = []
    for record in records:
        event = parse_activity(record, tz)
        if event is None:
            continue
        if date_range is not None and not date_range.contains(event.day):
            continue
        if event.id is not None:
            if event.id in seen_ids:
                continue
            seen_ids.add(event.id)
        events.append(event)
    events.sort(key=lambda e: e.day)
    return events


# ---- Netting ----

def daily_components(events: Iterable[CashFlowEvent], day: date) -> Tuple[Decimal, Decimal]:
    """Deposits and withdrawals dated exactly ``day``."""
    deposits = ZERO
    withdrawals = ZERO
    for event in events:
        if event.day != day:
            continue
        if event.kind == ActivityKind.DEPOSIT:
            deposits += event.amount
        else:
            withdrawals += event.amount
    return deposits, withdrawals


def net_flows_by_day(events: Iterable[CashFlowEvent]) -> Dict[date, Decimal]:
    """Signed net flow per calendar day."""
    totals: Dict[date, Decimal] = defaultdict(lambda: ZERO)
    for event in events:
        totals[event.day] += event.signed_amount
    return dict(totals)


def components_by_day(events: Iterable[CashFlowEvent]) -> Dict[date, Tuple[Decimal, Decimal]]:
    """(deposits, withdrawals) per calendar day."""
    totals: Dict[date, List[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for event in events:
        slot = 0 if event.kind == ActivityKind.DEPOSIT else 1
        totals[event.day][slot] += event.amount
    return {day: (values[0], values[1]) for day, values in totals.items()}


def interval_flow(events: Iterable[CashFlowEvent], prev_day: date, day: date) -> Decimal:
    """Net flow of events with ``prev_day < event.day <= day``."""
    return sum(
        (event.signed_amount for event in events if prev_day < event.day <= day),
        ZERO,
    )


class CashFlowLedger:
    """
    Reads deposits and withdrawals for an account from a paginated source.
    """

    def __init__(
        self,
        source: CashFlowSource,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> None:
        self.source = source
        self.page_size = page_size or settings.ledger.PAGE_SIZE
        self.max_pages = max_pages or settings.ledger.MAX_PAGES
        self.logger = get_logger("cash_flow_ledger")

    @error_handler(
        context_extractor=lambda self, account, date_range: {
            "account_id": account.account_id,
            "start": date_range.start.isoformat(),
            "end": date_range.end.isoformat(),
        },
        log_message="Failed to fetch cash flows",
    )
    async def fetch_cash_flows(
        self, account: AccountRef, date_range: DateRange
    ) -> List[CashFlowEvent]:
        """
        Fetch all deposits and withdrawals dated within ``date_range``.

        Raises:
            TransportError: Propagated from the source.
        """
        async def fetch_page(token: Optional[str], page_size: int) -> ActivityPage:
            return await self.source.fetch_activity_page(account, date_range, token, page_size)

        result = await paginate_activities(fetch_page, self.page_size, self.max_pages)
        events = normalize_activities(result.records, date_range)

        self.logger.debug(
            "Fetched cash flows",
            account_id=account.account_id,
            pages_fetched=result.pages_fetched,
            raw_count=len(result.records),
            event_count=len(events),
            capped=result.capped,
        )
        return events

from datetime import datetime, time, timezone
from typing import Optional

from mailroom.db.types import MessageFilter
from mailroom.errors import ValidationError
from mailroom.models import parse_datetime


def parse_limit(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError("limit", f"limit must be an integer, got '{value}'") from None


def parse_date(value: Optional[str], field: str, end_of_day: bool = False) -> Optional[datetime]:
    """ISO timestamp or ``YYYY-MM-DD``; bare dates cover the whole day."""
    if not value:
        return None
    try:
        if len(value) == 10:
            day = datetime.strptime(value, "%Y-%m-%d").date()
            return datetime.combine(
                day, time.max if end_of_day else time.min, tzinfo=timezone.utc
            )
        return parse_datetime(value)
    except ValueError:
        raise ValidationError(field, f"Invalid date '{value}'") from None


def conversation_filter(
    account_id: str,
    search: Optional[str] = None,
    sender: Optional[str] = None,
    recipient: Optional[str] = None,
    subject: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    has_attachment: Optional[bool] = None,
    is_unread: Optional[bool] = None,
    is_flagged: Optional[bool] = None,
    country: Optional[str] = None,
    lead_status: Optional[str] = None,
) -> MessageFilter:
    start = parse_date(date_from, "dateFrom")
    end = parse_date(date_to, "dateTo", end_of_day=True)
    if start and end and start > end:
        raise ValidationError("dateFrom", "dateFrom must not be after dateTo")
    return MessageFilter(
        account_id=account_id,
        text=(search or "").strip() or None,
        sender=(sender or "").strip() or None,
        recipient=(recipient or "").strip() or None,
        subject=(subject or "").strip() or None,
        date_from=start,
        date_to=end,
        has_attachment=has_attachment,
        is_unread=is_unread,
        is_flagged=is_flagged,
        country=(country or "").strip() or None,
        lead_status=(lead_status or "").strip() or None,
    )

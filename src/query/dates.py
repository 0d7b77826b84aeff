"""Date parsing for report filters and free-text exam dates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from src.exceptions import ValidationFailure

_EXAM_DATE_FORMATS = (
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%d-%b-%Y",
    "%d %B %Y",
)


def parse_exam_date(value: Optional[str]) -> Optional[datetime]:
    """Best-effort parse of a free-text exam date; None when unparseable."""
    if not value or not value.strip():
        return None
    text = value.strip()
    iso_text = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso_text)
        return parsed.replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in _EXAM_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def exam_date_range(values: Iterable[Optional[str]]) -> tuple[Optional[datetime], Optional[datetime]]:
    """Min/max of the parseable exam dates, (None, None) when none parse."""
    parsed = [d for d in (parse_exam_date(v) for v in values) if d is not None]
    if not parsed:
        return None, None
    return min(parsed), max(parsed)


def parse_filter_date(value: Optional[str], field_name: str, fmt: str = "%d-%m-%Y") -> Optional[date]:
    """Parse a dd-MM-yyyy query value; raise ValidationFailure when malformed."""
    if not value:
        return None
    try:
        return datetime.strptime(value, fmt).date()
    except ValueError as exc:
        raise ValidationFailure(f"Invalid {field_name} format. Use dd-MM-yyyy.") from exc


@dataclass(frozen=True)
class DateWindow:
    """Inclusive day window for event-log filters; open when both ends are None."""

    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    @classmethod
    def from_query(
        cls,
        date_value: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        fmt: str = "%d-%m-%Y",
    ) -> "DateWindow":
        """A start/end pair wins over a single date; a lone start or end is ignored."""
        single = parse_filter_date(date_value, "date", fmt)
        start = parse_filter_date(start_date, "startDate", fmt)
        end = parse_filter_date(end_date, "endDate", fmt)
        if start is not None and end is not None:
            return cls(start=start, end=end)
        if single is not None:
            return cls(start=single, end=single)
        return cls()

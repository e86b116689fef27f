from datetime import date, datetime, timezone


def normalize_date(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        value_text = value.strip()
        if not value_text:
            return None
        try:
            return date.fromisoformat(value_text[:10])
        except ValueError:
            return None
    return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    return date.today()


def parse_day_month(value: str) -> tuple[int, int]:
    """Parse a ``DD-MM`` financial-year start into ``(day, month)``."""
    parts = value.strip().split("-")
    if len(parts) != 2:
        raise ValueError("financial_year_start must be in DD-MM format")
    day, month = int(parts[0]), int(parts[1])
    # validates the pair (a leap year accepts 29-02)
    date(2000, month, day)
    return day, month


def financial_year_start_year(on: date, fy_start: str) -> int:
    day, month = parse_day_month(fy_start)
    if (on.month, on.day) >= (month, day):
        return on.year
    return on.year - 1


def financial_year_label(on: date, fy_start: str = "01-04") -> str:
    """``2025-26`` for an April-start year; ``2025`` when the year starts on 1 January."""
    start_year = financial_year_start_year(on, fy_start)
    if parse_day_month(fy_start) == (1, 1):
        return str(start_year)
    return "{}-{}".format(start_year, str(start_year + 1)[2:])

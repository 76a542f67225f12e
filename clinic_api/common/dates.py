"""
Date helpers shared by the sales and reports routers.
"""
import calendar
from datetime import datetime, date
from typing import Optional

import pytz
from fastapi import HTTPException, status

# All clinics currently operate in Brazil
CLINIC_TZ = pytz.timezone('America/Sao_Paulo')


def now_local() -> datetime:
    """Current date time in the clinic timezone."""
    return datetime.now(CLINIC_TZ)


def parse_flexible_date(date_str: Optional[str], is_end_date: bool = False) -> Optional[datetime]:
    """
    Parse flexible date formats and return as clinic timezone:
    - "2025" -> January 1, 2025 00:00:00 (start) or December 31, 2025 23:59:59 (end)
    - "2025-07" -> July 1, 2025 00:00:00 (start) or July 31, 2025 23:59:59 (end)
    - "2025-07-16" -> July 16, 2025 00:00:00 (start) or July 16, 2025 23:59:59 (end)

    Args:
        date_str: The date string to parse
        is_end_date: If True, returns end of period; if False, returns start of period

    Returns:
        datetime object in the clinic timezone

    Raises:
        HTTPException: 400 when the string matches none of the supported formats
    """
    if not date_str:
        return None

    date_str = date_str.strip()

    # Year only (e.g., "2025")
    if len(date_str) == 4 and date_str.isdigit():
        year = int(date_str)
        if is_end_date:
            naive_dt = datetime(year, 12, 31, 23, 59, 59)
        else:
            naive_dt = datetime(year, 1, 1, 0, 0, 0)
        return CLINIC_TZ.localize(naive_dt)

    # Year-Month (e.g., "2025-07")
    elif len(date_str) == 7 and date_str.count('-') == 1:
        try:
            year, month = map(int, date_str.split('-'))
            if is_end_date:
                last_day = calendar.monthrange(year, month)[1]
                naive_dt = datetime(year, month, last_day, 23, 59, 59)
            else:
                naive_dt = datetime(year, month, 1, 0, 0, 0)
            return CLINIC_TZ.localize(naive_dt)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid date format: {date_str}. Expected format: YYYY-MM"
            )

    # Full date (e.g., "2025-07-16")
    elif len(date_str) == 10 and date_str.count('-') == 2:
        try:
            parsed_date = datetime.strptime(date_str, "%Y-%m-%d")
            if is_end_date:
                naive_dt = parsed_date.replace(hour=23, minute=59, second=59)
            else:
                naive_dt = parsed_date.replace(hour=0, minute=0, second=0)
            return CLINIC_TZ.localize(naive_dt)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid date format: {date_str}. Expected format: YYYY-MM-DD"
            )

    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid date format: {date_str}. Supported formats: YYYY, YYYY-MM, YYYY-MM-DD"
        )


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse a stored YYYY-MM-DD string, returning None for empty or malformed values."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None

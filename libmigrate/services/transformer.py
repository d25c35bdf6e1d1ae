"""Value transforms for legacy library data."""

import json
import math
import random
import re
import string
import logging
from typing import Any, Dict, Optional, Tuple, Union
from datetime import date, datetime, timedelta
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DEFAULT_LOAN_DAYS = 14
DEFAULT_LAST_NAME = "Student"
DEFAULT_FIRST_NAME = "Unknown"
ANNOTATION_SOURCE = "legacy_migration"

AVAILABLE_TOKENS = ("yes", "y", "available", "avail", "true", "1")
TRUE_TOKENS = ("yes", "y", "true", "1", "lost", "t")

_DMY = re.compile(r"^\s*(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})\s*$")

_SINGULAR = {
    "books": "book",
    "students": "student",
    "categories": "category",
    "borrowings": "borrowing",
    "fines": "fine",
}

DateLike = Union[date, datetime]


def singular(entity: str) -> str:
    """Singular form of an entity type name."""
    return _SINGULAR.get(entity, entity.rstrip("s"))


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a legacy date value.

    ``DD/MM/YYYY`` (also with ``-`` or ``.``) is read day first. ISO dates go
    through dateutil's isoparse and anything else through its day-first
    parser. Bare numbers, unparsable and impossible dates return None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    match = _DMY.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            logger.debug(f"Invalid day-first date: {text}")
            return None

    # Only YYYYMMDD passes as a bare number.
    if text.isdigit() and len(text) != 8:
        logger.debug(f"Numeric value is not a date: {text}")
        return None

    try:
        return date_parser.isoparse(text).date()
    except (ValueError, OverflowError):
        pass

    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, OverflowError, TypeError):
        logger.debug(f"Unparsable date: {text}")
        return None


def to_iso(value: Optional[DateLike]) -> Optional[str]:
    """ISO-format a date, passing None through."""
    return value.isoformat() if value is not None else None


def days_between(later: DateLike, earlier: DateLike) -> int:
    """Whole days from ``earlier`` to ``later``, rounded up and clamped to >= 0."""
    if isinstance(later, datetime) != isinstance(earlier, datetime):
        later = later.date() if isinstance(later, datetime) else later
        earlier = earlier.date() if isinstance(earlier, datetime) else earlier
    delta = later - earlier
    days = math.ceil(delta / timedelta(days=1))
    return max(0, days)


def resolve_loan_dates(
    borrowed: Any,
    due: Any,
    returned: Any = None,
    historical: bool = False,
    today: Optional[date] = None
) -> Tuple[date, date, Optional[date]]:
    """
    Parse borrowing dates, filling defaults.

    An unknown borrowed date is today, an unknown due date is borrowed
    plus 14 days, and an unknown return date on a historical row is today.

    Returns:
        Tuple of (borrowed_date, due_date, returned_date)
    """
    today = today or date.today()
    borrowed_date = parse_date(borrowed) or today
    due_date = parse_date(due) or borrowed_date + timedelta(days=DEFAULT_LOAN_DAYS)
    returned_date = parse_date(returned)
    if historical and returned_date is None:
        returned_date = today
    return borrowed_date, due_date, returned_date


def split_name(full_name: Any) -> Tuple[str, str]:
    """
    Split a full name into first and last name.

    The first whitespace token is the first name, the rest the last name.
    """
    parts = str(full_name or "").split()
    if not parts:
        return DEFAULT_FIRST_NAME, DEFAULT_LAST_NAME
    first = parts[0]
    last = " ".join(parts[1:]) or DEFAULT_LAST_NAME
    return first, last


def is_available(value: Any) -> bool:
    """Read a legacy availability flag; anything unrecognised means borrowed."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return False
    return any(token in text for token in AVAILABLE_TOKENS)


def parse_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in TRUE_TOKENS


def parse_amount(value: Any) -> float:
    """Parse a money amount, returning 0 for blanks and garbage."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = re.sub(r"[^0-9.\-]", "", str(value))
    try:
        return float(text) if text else 0.0
    except ValueError:
        return 0.0


def parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return None


def normalize_legacy_id(value: Any) -> Optional[str]:
    """
    Normalize a legacy id to its string key.

    ``12``, ``12.0`` and ``" 12 "`` all become ``"12"``; blanks give None.
    """
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    if not text:
        return None
    if re.fullmatch(r"-?\d+\.0+", text):
        return text.split(".")[0]
    return text


def numeric_id(legacy_id: Optional[str]) -> Optional[int]:
    """Integer form of a legacy id, if it has one."""
    if legacy_id is not None and re.fullmatch(r"-?\d+", legacy_id):
        return int(legacy_id)
    return None


def build_annotation(entity: str, legacy_id: str, table: str, **extra) -> str:
    """
    Build the notes annotation that records a target row's legacy origin.

    Returns:
        JSON string with ``original_<entity>_id``
    """
    payload: Dict[str, Any] = {
        "source": ANNOTATION_SOURCE,
        f"original_{singular(entity)}_id": legacy_id,
        "legacy_table": table,
    }
    payload.update(extra)
    return json.dumps(payload)


def random_token(length: int = 6) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(random.choice(alphabet) for _ in range(length))


def generate_tracking_code(legacy_id: str, generate_new: bool = True) -> str:
    """Generate a book copy tracking code."""
    timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S%f")
    if generate_new:
        return f"BOOK-{random_token()}-{timestamp}"
    return f"OLD-{legacy_id}-{timestamp}"


def generate_book_code(legacy_code: str) -> str:
    return f"OLD-{legacy_code}-{random_token(4)}"


def class_for_year(admission_year: Any, assignments: Dict[str, str]) -> str:
    """Look up the class for an admission year, falling back to ``other``."""
    year = parse_int(admission_year)
    key = str(year) if year is not None else ""
    if key in assignments:
        return assignments[key]
    return assignments.get("other", "graduated")

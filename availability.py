"""
Availability Service

Resolves a public booking slug to its business and computes which slots
of a day are still bookable:
- working days gate the date
- the working-hours grid gives every candidate slot
- non-cancelled appointments of that date remove their slot
"""

import logging
import re
import unicodedata
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Set, Union

from pymongo import ASCENDING
from pymongo.database import Database

from database import get_document, get_documents
from errors import DateNotBookable, NotFound
from schemas import DATE_PATTERN, WEEKDAYS, Settings
from slots import generate_slots

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def derive_slug(name: Optional[str]) -> str:
    """
    URL slug for a business name: lowercased, accents stripped, every run
    of other characters collapsed into one hyphen, no hyphen at the ends.

    >>> derive_slug("Salão Premium")
    'salao-premium'
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name.lower())
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub("-", ascii_only).strip("-")


def list_named_businesses(db: Database) -> List[Dict[str, Any]]:
    return get_documents(
        db,
        "profile",
        {"business_name": {"$nin": [None, ""]}},
        sort=[("created_at", ASCENDING), ("_id", ASCENDING)],
    )


def resolve_business(db: Database, slug: str) -> Dict[str, Any]:
    """Profile addressed by `slug`. Persisted slugs win; legacy profiles are matched by name."""
    wanted = (slug or "").strip().lower()
    if not wanted:
        raise NotFound("Estabelecimento não encontrado", field="slug")

    profile = get_document(db, "profile", {"slug": wanted})
    if profile:
        return profile

    for profile in list_named_businesses(db):
        if derive_slug(profile.get("business_name")) == wanted:
            return profile

    logger.info(f"No business for slug '{wanted}'")
    raise NotFound("Estabelecimento não encontrado", field="slug")


def unique_slug(db: Database, business_name: str) -> str:
    """Derived slug for a new business, suffixed -2, -3... while already taken."""
    base = derive_slug(business_name)
    if not base:
        raise ValueError("business_name must contain at least one letter or digit")
    taken = {p.get("slug") or derive_slug(p.get("business_name")) for p in list_named_businesses(db)}
    candidate, n = base, 1
    while candidate in taken:
        n += 1
        candidate = f"{base}-{n}"
    return candidate


def get_settings(db: Database, user_id: str) -> Settings:
    return Settings.from_document(get_document(db, "settings", {"user_id": user_id}))


def list_active_services(db: Database, user_id: str) -> List[Dict[str, Any]]:
    return get_documents(db, "service", {"user_id": user_id, "status": "active"}, sort=[("name", ASCENDING)])


def parse_date(value: Union[str, date]) -> Optional[date]:
    """A date for YYYY-MM-DD input, None for anything else."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not re.match(DATE_PATTERN, value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def is_date_bookable(settings: Settings, day: Union[str, date]) -> bool:
    parsed = parse_date(day)
    if parsed is None:
        return False
    return WEEKDAYS[parsed.weekday()] in settings.working_days


def occupied_times(db: Database, user_id: str, day: str) -> Set[str]:
    docs = get_documents(
        db,
        "appointment",
        {"user_id": user_id, "date": day, "status": {"$ne": "cancelado"}},
        projection={"_id": 0, "date": 1, "time": 1},
    )
    return {d["time"] for d in docs if d.get("time")}


def available_slots(
    db: Database,
    business: Dict[str, Any],
    day: Union[str, date],
    settings: Optional[Settings] = None,
) -> List[str]:
    """
    Bookable slots of `day` for `business`, in grid order.

    Raises DateNotBookable when the date is malformed or not a working day.
    """
    user_id = business["user_id"]
    if settings is None:
        settings = get_settings(db, user_id)

    parsed = parse_date(day)
    if parsed is None or not is_date_bookable(settings, parsed):
        raise DateNotBookable()

    all_slots = generate_slots(
        settings.working_hours_start,
        settings.working_hours_end,
        settings.appointment_interval,
    )
    taken = occupied_times(db, user_id, parsed.isoformat())
    return [slot for slot in all_slots if slot not in taken]

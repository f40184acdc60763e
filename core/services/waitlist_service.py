# =============================================================================
# core/services/waitlist_service.py - Waitlist & Signup Intake
# =============================================================================
# Landing-page forms post repeated field names for table-like inputs:
#
#   trip_city[]=Paris  trip_from[]=2024-01-01  trip_to[]=2024-01-10
#   trip_city[]=       trip_from[]=2024-02-01  trip_to[]=
#
# zip_form_rows() turns those parallel lists into one dict per index and
# drops the rows whose anchor field (the city) is empty.
#
# Every accepted submission is appended as a new document; there is no
# de-duplication.
# =============================================================================

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from app.exceptions import InvalidSignupError
from core.models.waitlist import (
    BrandRequest,
    BrandWaitlistEntry,
    CreatorWaitlistEntry,
    EarlyAccessRequest,
    QuickSignupRequest,
    TripEntry,
)
from lib import collections
from lib.supabase_client import SupabaseClientError, SupabaseStore
from lib.utils import utc_now_iso

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_LEADING_INT = re.compile(r"^\d+")


class MultiValueForm(Protocol):
    """Form data with repeated keys (starlette's FormData satisfies this)."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def getlist(self, key: str) -> list[Any]: ...


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def zip_form_rows(columns: Mapping[str, Iterable[str]], anchor: str) -> list[dict[str, str]]:
    """
    Zip parallel form lists into rows, dropping rows with an empty anchor.

    Lists may have different lengths; missing cells are "".

    Example:
        zip_form_rows({"city": ["Paris", ""], "from": ["2024-01-01", "2024-02-01"]}, "city")
        -> [{"city": "Paris", "from": "2024-01-01"}]
    """
    lists = {name: [str(v or "").strip() for v in values] for name, values in columns.items()}
    length = max((len(values) for values in lists.values()), default=0)

    rows = []
    for i in range(length):
        row = {name: values[i] if i < len(values) else "" for name, values in lists.items()}
        if row.get(anchor):
            rows.append(row)
    return rows


def _field(form: MultiValueForm, name: str) -> str:
    return str(form.get(name) or "").strip()


def _values(form: MultiValueForm, name: str) -> list[str]:
    return [v for v in (str(item or "").strip() for item in form.getlist(name)) if v]


def _parse_int(value: str) -> int | None:
    """Leading digits of a free-text number ("12k" -> 12); None if there are none."""
    match = _LEADING_INT.match(value.replace(" ", "").replace(",", ""))
    return int(match.group()) if match else None


def _require(fields: dict[str, str], consent: bool) -> None:
    for name, value in fields.items():
        if not value:
            raise InvalidSignupError(f"{name} is required", field=name)
    if not consent:
        raise InvalidSignupError("Consent is required", field="consent")


def parse_brand_form(form: MultiValueForm) -> BrandWaitlistEntry:
    """
    Validate the brand waitlist form.

    Job type, asset quantity, budget and tax id apply to every request row.

    Raises:
        InvalidSignupError: Missing required field, bad email or no consent
    """
    brand_name = _field(form, "brandName")
    email = _field(form, "email")
    website_or_ig = _field(form, "websiteOrIg")
    consent = form.get("consent") == "on"

    _require({"brandName": brand_name, "email": email, "websiteOrIg": website_or_ig}, consent)
    if not is_valid_email(email):
        raise InvalidSignupError("Invalid email format", field="email")

    shared = {
        "job_type": _values(form, "jobType") or _values(form, "jobType[]"),
        "assets_qty": _field(form, "assetsQty"),
        "budget": _field(form, "budget"),
        "tax_id": _field(form, "taxId"),
    }
    rows = zip_form_rows(
        {
            "city": form.getlist("req_city[]"),
            "from": form.getlist("req_from[]"),
            "to": form.getlist("req_to[]"),
        },
        anchor="city",
    )
    requests = [
        BrandRequest(
            city=row["city"],
            window_from=row["from"] or None,
            window_to=row["to"] or None,
            **shared,
        )
        for row in rows
    ]

    return BrandWaitlistEntry(
        brand_name=brand_name,
        email=email,
        website_or_ig=website_or_ig,
        requests=requests,
        consent=consent,
    )


def parse_creator_form(form: MultiValueForm) -> CreatorWaitlistEntry:
    """
    Validate the creator waitlist form.

    Trip rows need a city and at least one of the two dates.

    Raises:
        InvalidSignupError: Missing required field, bad email or no consent
    """
    full_name = _field(form, "fullName")
    email = _field(form, "email")
    instagram = _field(form, "instagram")
    consent = form.get("consent") == "on"

    _require({"fullName": full_name, "email": email, "instagram": instagram}, consent)
    if not is_valid_email(email):
        raise InvalidSignupError("Invalid email format", field="email")

    rows = zip_form_rows(
        {
            "city": form.getlist("trip_city[]"),
            "from": form.getlist("trip_from[]"),
            "to": form.getlist("trip_to[]"),
        },
        anchor="city",
    )
    trips = [
        TripEntry(city=row["city"], date_from=row["from"] or None, date_to=row["to"] or None)
        for row in rows
        if row["from"] or row["to"]
    ]

    return CreatorWaitlistEntry(
        full_name=full_name,
        email=email,
        instagram=instagram,
        followers=_parse_int(_field(form, "followers")),
        trips=trips,
        content_types=_values(form, "contentTypes") or _values(form, "contentTypes[]"),
        rates=_field(form, "rates"),
        language=_field(form, "language"),
        consent=consent,
    )


class WaitlistService:
    """Appends validated intake documents to their collections."""

    def __init__(self, store: SupabaseStore):
        self.store = store

    def save_brand_entry(self, entry: BrandWaitlistEntry) -> str:
        data = {**entry.model_dump(mode="json"), "created_at": utc_now_iso()}
        row = self.store.insert(collections.WAITLIST_BRANDS, data)
        logger.info(f"Brand waitlist entry saved: {row.get('id')} ({len(entry.requests)} requests)")
        return str(row.get("id"))

    def save_creator_entry(self, entry: CreatorWaitlistEntry) -> str:
        data = {**entry.model_dump(mode="json", by_alias=True), "created_at": utc_now_iso()}
        row = self.store.insert(collections.WAITLIST_CREATORS, data)
        logger.info(f"Creator waitlist entry saved: {row.get('id')} ({len(entry.trips)} trips)")
        return str(row.get("id"))

    def quick_signup(self, request: QuickSignupRequest) -> str:
        """
        Store a quick signup for later processing.

        Returns:
            The new document id

        Raises:
            InvalidSignupError: If the email doesn't match EMAIL_PATTERN
        """
        if not is_valid_email(request.email):
            raise InvalidSignupError("Invalid email format", field="email")

        row = self.store.insert(collections.QUICK_SIGNUPS, {
            "email": request.email,
            "role": request.role.value,
            "source": request.source or "unknown",
            "timestamp": request.timestamp or utc_now_iso(),
            "processed": False,
        })
        logger.info(f"Quick signup saved: {row.get('id')} ({request.role.value}, {request.source})")
        return str(row.get("id"))

    def early_access(self, request: EarlyAccessRequest) -> bool:
        """
        Store an early-access signup.

        A store failure is logged, with the payload, and reported as False
        instead of raised.

        Raises:
            InvalidSignupError: If the email doesn't match EMAIL_PATTERN
        """
        if not is_valid_email(request.email):
            raise InvalidSignupError("Invalid email", field="email")

        payload = {
            "email": request.email,
            "source": request.source or "unknown",
            "timestamp": utc_now_iso(),
        }
        try:
            self.store.insert(collections.EARLY_ACCESS_WAITLIST, payload)
        except SupabaseClientError as e:
            logger.error(f"Early access signup not stored: {e}")
            logger.info(f"Early access fallback record: {payload}")
            return False

        logger.info(f"Early access signup saved: {payload['email']} ({payload['source']})")
        return True

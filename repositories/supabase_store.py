"""
Supabase-backed marketplace store (persistence).

Plain reads and idempotent single-statement writes go straight to the tables.
Check-then-write operations are delegated to PostgreSQL functions (see
sql/marketplace_functions.sql) so that the check and the write happen inside
one transaction holding a row lock on the application:

- acquire_application_lock: evaluates and applies a lock request
- record_dealer_purchase: idempotent purchase + lock side effects
- mark_purchase_downloaded: atomic download counter increment

The functions return JSON objects of the form
{"success": true, ...} or {"success": false, "error": CODE, "message": ...};
error codes are mapped back onto the domain exceptions here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Set
from uuid import UUID

from domain.application import Application, ApplicationStatus
from domain.errors import (
    AlreadyLockedByOther,
    ApplicationNotFound,
    DuplicateTemporaryLock,
    NotLockOwner,
    PurchaseNotFound,
    StoreConflict,
)
from domain.lock import Lock, LockAction, LockKind, LockRequest
from domain.pricing import (
    AgeDiscount,
    CompanyPricing,
    LockoutPeriod,
    PricingPolicy,
    lock_fees_from_periods,
)
from domain.purchase import DiscountInfo, Purchase
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import get_supabase
from repositories.store import LockOutcome, MarketplaceStore, PurchaseOutcome

logger = logging.getLogger(__name__)

# Supabase table names.
# Keep these aligned with your database schema.
_APPLICATIONS_TABLE: str = "applications"
_LOCKS_TABLE: str = "application_locks"
_PURCHASES_TABLE: str = "dealer_purchases"
_SETTINGS_TABLE: str = "system_settings"
_COMPANY_PRICING_TABLE: str = "company_pricing"
_LOCKOUT_PERIODS_TABLE: str = "lockout_periods"
_HIDDEN_TABLE: str = "hidden_applications"

_SETTINGS_ROW_ID: int = 1

# serialization_failure, deadlock_detected, unique_violation
_CONFLICT_CODES = {"40001", "40P01", "23505"}

_APPLICATION_COLUMNS = {"id", "created_at", "submission_date", "status", "is_permanently_locked"}


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def _optional_datetime(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value else None


def _row_to_application(row: Mapping[str, Any]) -> Application:
    """Convert a Supabase row into an Application; unknown columns become applicant data."""

    submitted = row.get("submission_date") or row["created_at"]
    return Application(
        application_id=UUID(str(row["id"])),
        submitted_at=parse_utc_datetime(submitted),
        status=ApplicationStatus(str(row.get("status") or "submitted")),
        applicant={k: v for k, v in row.items() if k not in _APPLICATION_COLUMNS},
        permanently_locked=bool(row.get("is_permanently_locked", False)),
    )


def _row_to_lock(row: Mapping[str, Any]) -> Lock:
    return Lock(
        lock_id=UUID(str(row["id"])),
        application_id=UUID(str(row["application_id"])),
        dealer_id=UUID(str(row["dealer_id"])),
        kind=LockKind(str(row["lock_type"])),
        locked_at=parse_utc_datetime(row["locked_at"]),
        expires_at=parse_utc_datetime(row["expires_at"]),
        payment_ref=row.get("payment_id"),
        fee_paid=_money(row.get("payment_amount") or 0),
    )


def _row_to_purchase(row: Mapping[str, Any]) -> Purchase:
    discount_amount = row.get("discount_amount")
    return Purchase(
        purchase_id=UUID(str(row["id"])),
        application_id=UUID(str(row["application_id"])),
        dealer_id=UUID(str(row["dealer_id"])),
        payment_ref=str(row["payment_id"]),
        amount=_money(row["payment_amount"]),
        purchased_at=parse_utc_datetime(row["purchase_date"]),
        discount=DiscountInfo(
            applied=bool(row.get("discount_applied") or False),
            kind=row.get("discount_type"),
            amount=_money(discount_amount) if discount_amount is not None else None,
        ),
        is_active=bool(row.get("is_active", True)),
        download_count=int(row.get("download_count") or 0),
        downloaded_at=_optional_datetime(row.get("downloaded_at")),
        checkout_session_id=row.get("stripe_session_id"),
    )


def _row_to_period(row: Mapping[str, Any]) -> LockoutPeriod:
    return LockoutPeriod(
        period_id=int(row["id"]),
        name=str(row["name"]),
        hours=int(row["hours"]),
        fee=_money(row["fee"]),
        is_active=bool(row.get("is_active", True)),
    )


def _raise_for_error(response: Any, action: str) -> None:
    error = getattr(response, "error", None)
    if error:
        code = getattr(error, "code", None)
        if str(code) in _CONFLICT_CODES:
            raise StoreConflict(f"Conflict while trying to {action}: {error}")
        raise RuntimeError(f"Failed to {action}: {error}")


def _rows(response: Any) -> List[Mapping[str, Any]]:
    return getattr(response, "data", None) or []


class SupabaseMarketplaceStore(MarketplaceStore):
    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def _rpc(self, function: str, params: Dict[str, Any]) -> Mapping[str, Any]:
        """
        Call a PostgreSQL function returning a JSON object.

        Supabase-py raises APIError when a function returns JSON that
        PostgREST cannot map, for both success and error payloads, so the
        payload is recovered from the exception when present.
        """

        from postgrest.exceptions import APIError

        try:
            response = self.client.rpc(function, params).execute()
        except APIError as e:
            if str(getattr(e, "code", "")) in _CONFLICT_CODES:
                raise StoreConflict(f"{function} lost a race: {e}") from e
            try:
                payload = e.json() if callable(getattr(e, "json", None)) else {}
            except (TypeError, ValueError):
                payload = {}
            if isinstance(payload, dict) and "success" in payload:
                return payload
            raise RuntimeError(f"{function} failed: {e}") from e

        _raise_for_error(response, f"call {function}")
        payload = getattr(response, "data", None)
        if not isinstance(payload, dict):
            raise RuntimeError(f"{function} returned an unexpected payload: {payload!r}")
        return payload

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def get_application(self, application_id: UUID) -> Optional[Application]:
        response = (
            self.client.table(_APPLICATIONS_TABLE)
            .select("*")
            .eq("id", str(application_id))
            .limit(1)
            .execute()
        )
        _raise_for_error(response, "fetch application")
        rows = _rows(response)
        return _row_to_application(rows[0]) if rows else None

    def list_applications(self) -> List[Application]:
        response = (
            self.client.table(_APPLICATIONS_TABLE)
            .select("*")
            .order("created_at", desc=True)
            .execute()
        )
        _raise_for_error(response, "list applications")
        applications = [_row_to_application(row) for row in _rows(response)]
        # submission_date may differ from created_at for imported rows.
        return sorted(applications, key=lambda a: a.submitted_at, reverse=True)

    def set_application_status(self, application_id: UUID, status: ApplicationStatus) -> Application:
        response = (
            self.client.table(_APPLICATIONS_TABLE)
            .update({"status": status.value})
            .eq("id", str(application_id))
            .execute()
        )
        _raise_for_error(response, "update application status")
        rows = _rows(response)
        if not rows:
            raise ApplicationNotFound(application_id)
        return _row_to_application(rows[0])

    def mark_permanently_locked(self, application_id: UUID) -> None:
        response = (
            self.client.table(_APPLICATIONS_TABLE)
            .update({"is_permanently_locked": True})
            .eq("id", str(application_id))
            .execute()
        )
        _raise_for_error(response, "mark application permanently locked")

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def list_locks(self, application_id: UUID) -> List[Lock]:
        response = (
            self.client.table(_LOCKS_TABLE)
            .select("*")
            .eq("application_id", str(application_id))
            .execute()
        )
        _raise_for_error(response, "list locks")
        return [_row_to_lock(row) for row in _rows(response)]

    def list_locks_for_applications(self, application_ids) -> Mapping[UUID, List[Lock]]:
        ids = [str(application_id) for application_id in application_ids]
        result: Dict[UUID, List[Lock]] = {UUID(i): [] for i in ids}
        if not ids:
            return result
        response = self.client.table(_LOCKS_TABLE).select("*").in_("application_id", ids).execute()
        _raise_for_error(response, "list locks")
        for row in _rows(response):
            lock = _row_to_lock(row)
            result.setdefault(lock.application_id, []).append(lock)
        return result

    def apply_lock_request(self, request: LockRequest, *, expires_at: datetime, as_of: datetime) -> LockOutcome:
        if not request.kind.is_requestable:
            raise ValueError(f"Lock kind {request.kind.value} cannot be requested directly")

        result = self._rpc(
            "acquire_application_lock",
            {
                "p_application_id": str(request.application_id),
                "p_dealer_id": str(request.dealer_id),
                "p_lock_type": request.kind.value,
                "p_locked_at": to_iso_utc(as_of, name="as_of"),
                "p_expires_at": to_iso_utc(expires_at, name="expires_at"),
                "p_payment_id": request.payment_ref,
                "p_payment_amount": str(request.fee),
                "p_extend": request.extend,
            },
        )

        if not result.get("success"):
            code = result.get("error")
            if code == "ALREADY_LOCKED":
                raise AlreadyLockedByOther(request.application_id, _optional_datetime(result.get("expires_at")))
            if code == "DUPLICATE_TEMPORARY_LOCK":
                raise DuplicateTemporaryLock(request.application_id)
            if code == "APPLICATION_NOT_FOUND":
                raise ApplicationNotFound(request.application_id)
            raise RuntimeError(f"Failed to lock application: {result.get('message') or code}")

        return LockOutcome(lock=_row_to_lock(result["lock"]), action=LockAction(str(result["action"])))

    def release_lock(self, application_id: UUID, dealer_id: UUID, *, as_of: datetime) -> Lock:
        now = to_iso_utc(as_of, name="as_of")

        # Conditional update: only an unexpired lock is shortened, so a second
        # release leaves the row untouched.
        response = (
            self.client.table(_LOCKS_TABLE)
            .update({"expires_at": now, "updated_at": now})
            .eq("application_id", str(application_id))
            .eq("dealer_id", str(dealer_id))
            .gt("expires_at", now)
            .execute()
        )
        _raise_for_error(response, "release lock")
        rows = _rows(response)
        if rows:
            return _row_to_lock(rows[0])

        existing = (
            self.client.table(_LOCKS_TABLE)
            .select("*")
            .eq("application_id", str(application_id))
            .eq("dealer_id", str(dealer_id))
            .limit(1)
            .execute()
        )
        _raise_for_error(existing, "fetch lock")
        rows = _rows(existing)
        if not rows:
            raise NotLockOwner(application_id, dealer_id)
        return _row_to_lock(rows[0])

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def record_purchase(self, purchase: Purchase, *, as_of: datetime) -> PurchaseOutcome:
        result = self._rpc(
            "record_dealer_purchase",
            {
                "p_purchase_id": str(purchase.purchase_id),
                "p_dealer_id": str(purchase.dealer_id),
                "p_application_id": str(purchase.application_id),
                "p_payment_id": purchase.payment_ref,
                "p_payment_amount": str(purchase.amount),
                "p_purchase_date": to_iso_utc(purchase.purchased_at, name="purchased_at"),
                "p_now": to_iso_utc(as_of, name="as_of"),
                "p_stripe_session_id": purchase.checkout_session_id,
                "p_discount_applied": purchase.discount.applied,
                "p_discount_type": purchase.discount.kind,
                "p_discount_amount": str(purchase.discount.amount) if purchase.discount.amount is not None else None,
            },
        )

        if not result.get("success"):
            if result.get("error") == "APPLICATION_NOT_FOUND":
                raise ApplicationNotFound(purchase.application_id)
            raise RuntimeError(f"Failed to record purchase: {result.get('message') or result.get('error')}")

        purchase_lock = result.get("purchase_lock")
        return PurchaseOutcome(
            purchase=_row_to_purchase(result["purchase"]),
            created=bool(result.get("created")),
            expired_lock_count=int(result.get("expired_locks") or 0),
            purchase_lock=_row_to_lock(purchase_lock) if purchase_lock else None,
        )

    def get_active_purchase(self, application_id: UUID, dealer_id: UUID) -> Optional[Purchase]:
        response = (
            self.client.table(_PURCHASES_TABLE)
            .select("*")
            .eq("application_id", str(application_id))
            .eq("dealer_id", str(dealer_id))
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        _raise_for_error(response, "check purchase status")
        rows = _rows(response)
        return _row_to_purchase(rows[0]) if rows else None

    def list_purchases(self, dealer_id: UUID) -> List[Purchase]:
        response = (
            self.client.table(_PURCHASES_TABLE)
            .select("*")
            .eq("dealer_id", str(dealer_id))
            .order("purchase_date", desc=True)
            .execute()
        )
        _raise_for_error(response, "list purchases")
        return [_row_to_purchase(row) for row in _rows(response)]

    def purchased_application_ids(self, dealer_id: UUID) -> Set[UUID]:
        response = (
            self.client.table(_PURCHASES_TABLE)
            .select("application_id")
            .eq("dealer_id", str(dealer_id))
            .eq("is_active", True)
            .execute()
        )
        _raise_for_error(response, "fetch purchased application IDs")
        return {UUID(str(row["application_id"])) for row in _rows(response)}

    def record_download(self, application_id: UUID, dealer_id: UUID, *, at: datetime) -> Purchase:
        result = self._rpc(
            "mark_purchase_downloaded",
            {
                "p_dealer_id": str(dealer_id),
                "p_application_id": str(application_id),
                "p_downloaded_at": to_iso_utc(at, name="at"),
            },
        )
        if not result.get("success"):
            if result.get("error") == "PURCHASE_NOT_FOUND":
                raise PurchaseNotFound(application_id, dealer_id)
            raise RuntimeError(f"Failed to record download: {result.get('message') or result.get('error')}")
        return _row_to_purchase(result["purchase"])

    def count_purchases(self, application_id: UUID) -> int:
        response = (
            self.client.table(_PURCHASES_TABLE)
            .select("id", count="exact")
            .eq("application_id", str(application_id))
            .eq("is_active", True)
            .execute()
        )
        _raise_for_error(response, "count purchases")
        count = getattr(response, "count", None)
        return int(count) if count is not None else len(_rows(response))

    # ------------------------------------------------------------------
    # Pricing configuration
    # ------------------------------------------------------------------

    def get_pricing_policy(self) -> Optional[PricingPolicy]:
        response = self.client.table(_SETTINGS_TABLE).select("*").limit(1).execute()
        _raise_for_error(response, "fetch system settings")
        rows = _rows(response)
        if not rows or rows[0].get("standard_price") is None:
            return None

        row = rows[0]
        return PricingPolicy(
            standard_price=_money(row["standard_price"]),
            discounted_price=_money(row["discounted_price"]),
            age_discount=AgeDiscount(
                enabled=bool(row.get("age_discount_enabled") or False),
                threshold_days=int(row.get("age_discount_threshold") or 0),
                percentage=Decimal(str(row.get("age_discount_percentage") or 0)),
            ),
            temporary_lock_minutes=int(row.get("temporary_lock_minutes") or 60),
            lock_fees=lock_fees_from_periods(self.list_lockout_periods()),
        )

    def save_pricing_policy(self, policy: PricingPolicy) -> PricingPolicy:
        payload: Dict[str, Any] = {
            "id": _SETTINGS_ROW_ID,
            "standard_price": str(policy.standard_price),
            "discounted_price": str(policy.discounted_price),
            "temporary_lock_minutes": policy.temporary_lock_minutes,
            "age_discount_enabled": policy.age_discount.enabled,
            "age_discount_threshold": policy.age_discount.threshold_days,
            "age_discount_percentage": str(policy.age_discount.percentage),
        }
        response = self.client.table(_SETTINGS_TABLE).upsert(payload).execute()
        _raise_for_error(response, "update system settings")

        for kind, fee in policy.lock_fees.items():
            fee_response = (
                self.client.table(_LOCKOUT_PERIODS_TABLE)
                .update({"fee": str(fee)})
                .eq("name", kind.value)
                .execute()
            )
            _raise_for_error(fee_response, f"update lock fee for {kind.value}")
            if not _rows(fee_response):
                logger.warning("No lockout period named %s; fee %s not saved", kind.value, fee)

        saved = self.get_pricing_policy()
        if saved is None:
            raise RuntimeError("System settings were not persisted")
        return saved

    def get_company_pricing(self, company_id: UUID) -> Optional[CompanyPricing]:
        response = (
            self.client.table(_COMPANY_PRICING_TABLE)
            .select("*")
            .eq("company_id", str(company_id))
            .limit(1)
            .execute()
        )
        _raise_for_error(response, "fetch company pricing")
        rows = _rows(response)
        if not rows:
            return None
        return CompanyPricing(
            company_id=UUID(str(rows[0]["company_id"])),
            standard_price=_money(rows[0]["standard_price"]),
            discounted_price=_money(rows[0]["discounted_price"]),
        )

    def save_company_pricing(self, pricing: CompanyPricing) -> CompanyPricing:
        response = (
            self.client.table(_COMPANY_PRICING_TABLE)
            .upsert(
                {
                    "company_id": str(pricing.company_id),
                    "standard_price": str(pricing.standard_price),
                    "discounted_price": str(pricing.discounted_price),
                },
                on_conflict="company_id",
            )
            .execute()
        )
        _raise_for_error(response, "update company pricing")
        return pricing

    def list_lockout_periods(self, *, active_only: bool = True) -> List[LockoutPeriod]:
        query = self.client.table(_LOCKOUT_PERIODS_TABLE).select("*")
        if active_only:
            query = query.eq("is_active", True)
        response = query.order("hours").execute()
        _raise_for_error(response, "fetch lockout periods")
        return [_row_to_period(row) for row in _rows(response)]

    # ------------------------------------------------------------------
    # Dealer preferences
    # ------------------------------------------------------------------

    def hide_application(self, dealer_id: UUID, application_id: UUID) -> None:
        response = (
            self.client.table(_HIDDEN_TABLE)
            .upsert(
                {"application_id": str(application_id), "dealer_id": str(dealer_id)},
                on_conflict="application_id,dealer_id",
            )
            .execute()
        )
        _raise_for_error(response, "hide application")

    def unhide_application(self, dealer_id: UUID, application_id: UUID) -> None:
        response = (
            self.client.table(_HIDDEN_TABLE)
            .delete()
            .eq("application_id", str(application_id))
            .eq("dealer_id", str(dealer_id))
            .execute()
        )
        _raise_for_error(response, "unhide application")

    def hidden_application_ids(self, dealer_id: UUID) -> Set[UUID]:
        response = (
            self.client.table(_HIDDEN_TABLE)
            .select("application_id")
            .eq("dealer_id", str(dealer_id))
            .execute()
        )
        _raise_for_error(response, "fetch hidden applications")
        return {UUID(str(row["application_id"])) for row in _rows(response)}


__all__ = ["SupabaseMarketplaceStore"]

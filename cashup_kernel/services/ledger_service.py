"""
LedgerService -- trip writes: create, replace, patch, delete, status, fees.

Responsibility:
    The only writer of Trip, TripGuide, PaymentBreakdown and DiscountLine.
    Runs the fee engine for every rostered guide, keeps the trip leader in
    the roster and writes one audit row per mutation.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - A trip leader must be SENIOR or INTERMEDIATE and is always forced
      into the roster.
    - Fees are recomputed and persisted on every create, replace, pax patch
      and bulk recalculation, even when the value does not change.
    - Replace deletes and recreates the roster, payments and discounts
      inside the caller's transaction; nothing else is ever partially
      updated.
    - Every trip always has exactly one PaymentBreakdown (zeros when the
      caller supplies none).
    - Every mutation writes exactly one audit row per trip in the same
      transaction.

Failure modes:
    - ValidationError subclasses for bad input, unknown guide references
      and ineligible leaders -- raised before any write.
    - AuthorizationError subclasses for callers who may not edit.
    - TripNotFoundError / TripGuideNotFoundError for unknown ids.
    - LeaderMissingFromRosterError when a stored trip already violates the
      leader-in-roster rule; backfill_trip_leaders() repairs it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cashup_kernel.domain.actor import Actor
from cashup_kernel.domain.clock import Clock, SystemClock
from cashup_kernel.domain.fees import calculate_fee
from cashup_kernel.domain.rates import DEFAULT_RATE_TABLE, GuideRank, RateTable
from cashup_kernel.domain.requests import (
    CashupRequest,
    FeeAdjustmentRequest,
    TripPatch,
    TripRequest,
    TripStatus,
)
from cashup_kernel.exceptions import (
    FeeAdjustmentReasonRequiredError,
    IneligibleTripLeaderError,
    InvalidFieldError,
    LeaderMissingFromRosterError,
    NotTripEditorError,
    TripGuideNotFoundError,
    TripLockedError,
    TripNotFoundError,
)
from cashup_kernel.logging_config import LogContext, get_logger
from cashup_kernel.models.audit_log import AuditAction
from cashup_kernel.models.guide import Guide
from cashup_kernel.models.payment_exception import PaymentException
from cashup_kernel.models.trip import DiscountLine, PaymentBreakdown, Trip, TripGuide
from cashup_kernel.services._access import (
    require_admin,
    require_guide_link,
    require_status_change_allowed,
    require_trip_editor,
)
from cashup_kernel.services.auditor_service import AuditorService
from cashup_kernel.services.exception_service import ExceptionService

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class CashupResult:
    trip: Trip
    exception: PaymentException | None = None


@dataclass(frozen=True)
class RecalculationSummary:
    trips_processed: int
    fees_written: int
    fees_changed: int
    rate_version: str


class LedgerService:
    """Trip ledger writes."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        rates: RateTable = DEFAULT_RATE_TABLE,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._rates = rates
        self._clock = clock or SystemClock()

    # -----------------------------------------------------------------
    # Loading and validation
    # -----------------------------------------------------------------

    def _load_trip(self, trip_id: UUID, *, for_update: bool = False) -> Trip:
        stmt = select(Trip).where(Trip.id == trip_id)
        if for_update:
            stmt = stmt.with_for_update()
        trip = self._session.execute(stmt).scalar_one_or_none()
        if trip is None:
            raise TripNotFoundError(str(trip_id))
        return trip

    def _resolve_roster(self, request: TripRequest) -> list[Guide]:
        """
        Load every guide the trip references, leader included, and check
        the leader's rank.  Unknown ids are a validation failure of the
        request, not a lookup miss.
        """
        roster_ids = request.roster()
        guides = {
            guide.id: guide
            for guide in self._session.execute(
                select(Guide).where(Guide.id.in_(roster_ids))
            ).scalars()
        } if roster_ids else {}

        for guide_id in roster_ids:
            if guide_id not in guides:
                field = "trip_leader_id" if guide_id == request.trip_leader_id else "guide_ids"
                raise InvalidFieldError(field, f"guide {guide_id} not found")

        if request.trip_leader_id is not None:
            leader = guides[request.trip_leader_id]
            if not leader.can_lead:
                raise IneligibleTripLeaderError(str(leader.id), GuideRank(leader.rank).value)

        return [guides[guide_id] for guide_id in roster_ids]

    def _fee_for(self, guide: Guide, is_leader: bool) -> Decimal:
        return calculate_fee(guide.rank, is_leader, guide.name, self._rates)

    def _assert_leader_in_roster(self, trip: Trip) -> None:
        if not trip.leader_in_roster:
            logger.error(
                "leader_missing_from_roster",
                extra={"trip_id": str(trip.id), "leader_id": str(trip.trip_leader_id)},
            )
            raise LeaderMissingFromRosterError(str(trip.id), str(trip.trip_leader_id))

    # -----------------------------------------------------------------
    # Child records
    # -----------------------------------------------------------------

    def _build_children(self, trip: Trip, request: TripRequest, roster: list[Guide]) -> None:
        for guide in roster:
            trip.guides.append(
                TripGuide(
                    guide_id=guide.id,
                    guide=guide,
                    fee_amount=self._fee_for(guide, guide.id == request.trip_leader_id),
                    pax_count=0,
                )
            )

        payments = request.payments
        trip.payments = PaymentBreakdown(
            cash_received=payments.cash_received if payments else Decimal("0.00"),
            phone_pouches=payments.phone_pouches if payments else Decimal("0.00"),
            water_sales=payments.water_sales if payments else Decimal("0.00"),
            sunglasses_sales=payments.sunglasses_sales if payments else Decimal("0.00"),
        )

        for position, discount in enumerate(request.discounts):
            trip.discounts.append(
                DiscountLine(position=position, amount=discount.amount, reason=discount.reason)
            )

    def _clear_children(self, trip: Trip) -> None:
        trip.guides.clear()
        trip.discounts.clear()
        trip.payments = None
        # Deletes must reach the database before re-inserting rows that
        # share the (trip_id, guide_id) and trip_id unique keys
        self._session.flush()

    @staticmethod
    def _apply_fields(trip: Trip, request: TripRequest) -> None:
        trip.trip_date = request.trip_date
        trip.lead_name = request.lead_name
        trip.pax_guide_note = request.pax_guide_note
        trip.total_pax = request.total_pax
        trip.trip_leader_id = request.trip_leader_id
        trip.payments_made = request.payments_made
        trip.pics_uploaded = request.pics_uploaded
        trip.trip_email_sent = request.trip_email_sent
        trip.trip_report = request.trip_report
        trip.suggestions = request.suggestions

    # -----------------------------------------------------------------
    # Trip lifecycle
    # -----------------------------------------------------------------

    def create_trip(
        self,
        actor: Actor,
        request: TripRequest,
        *,
        default_status: TripStatus = TripStatus.APPROVED,
    ) -> Trip:
        """
        Log a trip with its roster, fees, payments and discounts.

        Directly logged trips are APPROVED.  Only admins may ask for another
        status.
        """
        require_status_change_allowed(actor, default_status, request.status)
        roster = self._resolve_roster(request)

        trip = Trip(
            created_by_id=actor.account_id,
            created_at=self._clock.now(),
            status=request.status or default_status,
        )
        self._apply_fields(trip, request)
        self._build_children(trip, request, roster)
        self._session.add(trip)
        self._session.flush()

        with LogContext.bind(trip_id=str(trip.id)):
            self._auditor.record(
                "Trip", trip.id, AuditAction.CREATE,
                after=trip.to_snapshot(), actor_id=actor.account_id,
            )
            logger.info(
                "trip_created",
                extra={
                    "trip_date": trip.trip_date,
                    "guide_count": len(trip.guides),
                    "status": TripStatus(trip.status).value,
                },
            )
        return trip

    def replace_trip(self, actor: Actor, trip_id: UUID, request: TripRequest) -> Trip:
        """
        Full edit: delete and recreate roster, payments and discounts, then
        re-derive every fee.  Status is kept unless an admin sets one.
        """
        trip = self._load_trip(trip_id, for_update=True)
        require_trip_editor(actor, trip)
        require_status_change_allowed(actor, TripStatus(trip.status), request.status)
        roster = self._resolve_roster(request)

        with LogContext.bind(trip_id=str(trip.id)):
            before = trip.to_snapshot()

            self._clear_children(trip)
            self._apply_fields(trip, request)
            if request.status is not None:
                trip.status = request.status
            self._build_children(trip, request, roster)
            self._session.flush()

            self._auditor.record(
                "Trip", trip.id, AuditAction.UPDATE,
                before=before, after=trip.to_snapshot(), actor_id=actor.account_id,
            )
            logger.info("trip_replaced", extra={"guide_count": len(trip.guides)})
        return trip

    def patch_trip(self, actor: Actor, trip_id: UUID, patch: TripPatch) -> Trip:
        """
        Admin partial update of date, lead name, notes, pax, flags, status.

        A pax change recomputes every rostered guide's fee.
        """
        require_admin(actor, "patch_trip")
        trip = self._load_trip(trip_id, for_update=True)
        changes = patch.changes()

        with LogContext.bind(trip_id=str(trip.id)):
            before = trip.to_snapshot()
            pax_changed = "total_pax" in changes and changes["total_pax"] != trip.total_pax

            for name, value in changes.items():
                setattr(trip, name, value)

            if pax_changed:
                self._assert_leader_in_roster(trip)
                self._recompute_fees(trip)
            self._session.flush()

            self._auditor.record(
                "Trip", trip.id, AuditAction.PATCH,
                before=before, after=trip.to_snapshot(), actor_id=actor.account_id,
            )
            logger.info(
                "trip_patched",
                extra={"fields": sorted(changes), "fees_recomputed": pax_changed},
            )
        return trip

    def delete_trip(self, actor: Actor, trip_id: UUID) -> None:
        """
        Admin delete.  The audit row carries the full pre-delete snapshot and
        is written before the trip and its children are removed.  Payment
        exceptions linked to the trip are kept and unlinked.
        """
        require_admin(actor, "delete_trip")
        trip = self._load_trip(trip_id, for_update=True)

        with LogContext.bind(trip_id=str(trip.id)):
            self._auditor.record(
                "Trip", trip.id, AuditAction.DELETE,
                before=trip.to_snapshot(), actor_id=actor.account_id,
            )

            linked = self._session.execute(
                select(PaymentException).where(PaymentException.trip_id == trip.id)
            ).scalars().all()
            for exception in linked:
                exception.trip_id = None
            self._session.flush()

            self._session.delete(trip)
            self._session.flush()
            logger.info("trip_deleted", extra={"unlinked_exceptions": len(linked)})

    def set_status(self, actor: Actor, trip_id: UUID, status: TripStatus) -> Trip:
        """Admin status override; any status may be set at any time."""
        require_admin(actor, "set_status")
        status = TripStatus(status)
        trip = self._load_trip(trip_id, for_update=True)

        with LogContext.bind(trip_id=str(trip.id)):
            old_status = TripStatus(trip.status)
            trip.status = status
            self._session.flush()

            self._auditor.record(
                "Trip", trip.id, AuditAction.STATUS_CHANGED,
                before={"status": old_status.value},
                after={"status": status.value},
                actor_id=actor.account_id,
            )
            logger.info(
                "trip_status_changed",
                extra={"from_status": old_status.value, "to_status": status.value},
            )
        return trip

    def submit_cashup(self, actor: Actor, request: CashupRequest) -> CashupResult:
        """
        Guide-submitted cash-up: the trip is logged as SUBMITTED and an
        optional payment exception is raised for the submitting guide, both
        in the caller's transaction.
        """
        require_guide_link(actor)

        trip = self.create_trip(
            actor, replace(request.trip, status=None), default_status=TripStatus.SUBMITTED,
        )

        exception = None
        if request.exception is not None:
            exceptions = ExceptionService(self._session, self._auditor, self._clock)
            exception = exceptions.create_exception(
                actor,
                replace(request.exception, guide_id=actor.guide_id, trip_id=trip.id),
            )

        logger.info(
            "cashup_submitted",
            extra={
                "trip_id": str(trip.id),
                "exception_raised": exception is not None,
            },
        )
        return CashupResult(trip=trip, exception=exception)

    # -----------------------------------------------------------------
    # Fees
    # -----------------------------------------------------------------

    def _recompute_fees(self, trip: Trip) -> tuple[int, int]:
        """Rewrite every roster fee from the current rates.  Returns (written, changed)."""
        written = changed = 0
        for trip_guide in trip.guides:
            fee = self._fee_for(trip_guide.guide, trip_guide.guide_id == trip.trip_leader_id)
            if fee != trip_guide.fee_amount:
                changed += 1
            trip_guide.fee_amount = fee
            written += 1
        return written, changed

    def adjust_fee(self, actor: Actor, trip_guide_id: UUID, request: FeeAdjustmentRequest) -> TripGuide:
        """
        Manual fee override with a mandatory reason.

        Allowed for admins, the guide whose fee it is, and the trip leader.
        Fees on a LOCKED trip are adjusted by admins only.
        """
        trip_guide = self._session.get(TripGuide, trip_guide_id)
        if trip_guide is None:
            raise TripGuideNotFoundError(str(trip_guide_id))
        trip = trip_guide.trip

        is_own_fee = actor.guide_id is not None and actor.guide_id == trip_guide.guide_id
        is_leader = actor.guide_id is not None and actor.guide_id == trip.trip_leader_id
        if not (actor.is_admin or is_own_fee or is_leader):
            raise NotTripEditorError(str(trip.id), actor.actor_id)
        if not actor.is_admin and TripStatus(trip.status) is TripStatus.LOCKED:
            raise TripLockedError(str(trip.id), actor.actor_id)
        if not request.reason:
            raise FeeAdjustmentReasonRequiredError(str(trip_guide_id))

        with LogContext.bind(trip_id=str(trip.id), guide_id=str(trip_guide.guide_id)):
            before = {
                "fee_amount": trip_guide.fee_amount,
                "trip_id": str(trip.id),
                "guide_id": str(trip_guide.guide_id),
                "guide_name": trip_guide.guide.name,
                "trip_date": trip.trip_date,
                "trip_lead_name": trip.lead_name,
            }
            trip_guide.fee_amount = request.fee_amount
            self._session.flush()

            self._auditor.record_fee_adjusted(
                trip_guide.id,
                before=before,
                after={
                    "fee_amount": request.fee_amount,
                    "reason": request.reason,
                    "adjusted_by": "ADMIN" if actor.is_admin else "GUIDE",
                },
                actor_id=actor.account_id,
            )
            logger.info(
                "fee_adjusted",
                extra={"old_fee": before["fee_amount"], "new_fee": request.fee_amount},
            )
        return trip_guide

    def recompute_guide_fees(self, actor: Actor, guide_id: UUID) -> list[UUID]:
        """
        Rewrite one guide's fee on every trip they are rostered on, after
        their rank or name changed.  Other roster rows keep their fees.

        Each touched trip gets one FEES_RECALCULATED audit row.  Returns the
        ids of those trips.
        """
        require_admin(actor, "recompute_guide_fees")
        rostered = select(TripGuide.trip_id).where(TripGuide.guide_id == guide_id)
        trips = self._session.execute(
            select(Trip)
            .where(Trip.id.in_(rostered))
            .order_by(Trip.trip_date, Trip.created_at)
            .with_for_update()
        ).scalars().all()

        touched: list[UUID] = []
        changed = 0
        with LogContext.bind(guide_id=str(guide_id)):
            for trip in trips:
                trip_guide = trip.roster_entry(guide_id)
                before = trip.to_snapshot()
                fee = self._fee_for(trip_guide.guide, guide_id == trip.trip_leader_id)
                if fee != trip_guide.fee_amount:
                    changed += 1
                trip_guide.fee_amount = fee
                self._session.flush()
                self._auditor.record(
                    "Trip", trip.id, AuditAction.FEES_RECALCULATED,
                    before=before,
                    after={
                        **trip.to_snapshot(),
                        "rate_version": self._rates.version,
                        "recomputed_guide_id": str(guide_id),
                    },
                    actor_id=actor.account_id,
                )
                touched.append(trip.id)

            logger.info(
                "guide_fees_recomputed",
                extra={"trips_processed": len(touched), "fees_changed": changed},
            )
        return touched

    def recalculate_all_fees(self, actor: Actor) -> RecalculationSummary:
        """
        Admin bulk rewrite of every roster fee from the current rates.

        Every trip with a roster gets one FEES_RECALCULATED audit row.
        Trips whose leader is missing from the roster stop the run before
        anything is written.
        """
        require_admin(actor, "recalculate_all_fees")
        trips = self._session.execute(
            select(Trip).order_by(Trip.trip_date, Trip.created_at).with_for_update()
        ).scalars().all()
        for trip in trips:
            self._assert_leader_in_roster(trip)

        processed = written = changed = 0
        for trip in trips:
            if not trip.guides:
                continue
            before = trip.to_snapshot()
            trip_written, trip_changed = self._recompute_fees(trip)
            self._session.flush()
            self._auditor.record(
                "Trip", trip.id, AuditAction.FEES_RECALCULATED,
                before=before,
                after={**trip.to_snapshot(), "rate_version": self._rates.version},
                actor_id=actor.account_id,
            )
            processed += 1
            written += trip_written
            changed += trip_changed

        logger.info(
            "fees_recalculated",
            extra={
                "trips_processed": processed,
                "fees_written": written,
                "fees_changed": changed,
                "rate_version": self._rates.version,
            },
        )
        return RecalculationSummary(
            trips_processed=processed,
            fees_written=written,
            fees_changed=changed,
            rate_version=self._rates.version,
        )

    def backfill_trip_leaders(self, actor: Actor) -> list[UUID]:
        """
        Repair trips whose leader is missing from the roster by adding the
        leader with the leader fee.  Each repair is audited as
        ROSTER_BACKFILLED so it is distinguishable from user edits.

        Returns the ids of repaired trips.
        """
        require_admin(actor, "backfill_trip_leaders")
        trips = self._session.execute(
            select(Trip)
            .where(Trip.trip_leader_id.is_not(None))
            .order_by(Trip.trip_date, Trip.created_at)
            .with_for_update()
        ).scalars().all()

        repaired: list[UUID] = []
        for trip in trips:
            if trip.leader_in_roster:
                continue
            leader = self._session.get(Guide, trip.trip_leader_id)
            before = trip.to_snapshot()
            trip.guides.append(
                TripGuide(
                    guide_id=leader.id,
                    guide=leader,
                    fee_amount=self._fee_for(leader, True),
                    pax_count=0,
                )
            )
            self._session.flush()
            self._auditor.record(
                "Trip", trip.id, AuditAction.ROSTER_BACKFILLED,
                before=before, after=trip.to_snapshot(), actor_id=actor.account_id,
            )
            repaired.append(trip.id)

        logger.info("trip_leaders_backfilled", extra={"trips_repaired": len(repaired)})
        return repaired

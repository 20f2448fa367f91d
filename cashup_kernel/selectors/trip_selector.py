"""
TripSelector -- read side of the trip ledger.

Returns TripView snapshots for single trips and filtered listings, and
finds trips whose leader is missing from the roster.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from cashup_kernel.domain.actor import Actor
from cashup_kernel.domain.rates import GuideRank
from cashup_kernel.domain.requests import TripStatus
from cashup_kernel.exceptions import TripNotFoundError
from cashup_kernel.models.trip import Trip, TripGuide
from cashup_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class RosterEntryView:
    trip_guide_id: UUID
    guide_id: UUID
    guide_name: str
    rank: GuideRank
    fee_amount: Decimal
    is_leader: bool


@dataclass(frozen=True)
class TripView:
    id: UUID
    trip_date: date
    created_at: datetime
    lead_name: str
    pax_guide_note: str | None
    total_pax: int
    trip_leader_id: UUID | None
    status: TripStatus
    payments_made: bool
    pics_uploaded: bool
    trip_email_sent: bool
    trip_report: str | None
    suggestions: str | None
    created_by_id: UUID | None
    roster: tuple[RosterEntryView, ...]
    cash_received: Decimal
    ancillary: Decimal
    discount_total: Decimal
    net_total: Decimal

    @property
    def guide_ids(self) -> set[UUID]:
        return {entry.guide_id for entry in self.roster}

    def fee_for(self, guide_id: UUID) -> Decimal | None:
        return next((e.fee_amount for e in self.roster if e.guide_id == guide_id), None)

    @classmethod
    def from_model(cls, trip: Trip) -> TripView:
        payments = trip.payments
        return cls(
            id=trip.id,
            trip_date=trip.trip_date,
            created_at=trip.created_at,
            lead_name=trip.lead_name,
            pax_guide_note=trip.pax_guide_note,
            total_pax=trip.total_pax,
            trip_leader_id=trip.trip_leader_id,
            status=TripStatus(trip.status),
            payments_made=trip.payments_made,
            pics_uploaded=trip.pics_uploaded,
            trip_email_sent=trip.trip_email_sent,
            trip_report=trip.trip_report,
            suggestions=trip.suggestions,
            created_by_id=trip.created_by_id,
            roster=tuple(
                RosterEntryView(
                    trip_guide_id=tg.id,
                    guide_id=tg.guide_id,
                    guide_name=tg.guide.name,
                    rank=GuideRank(tg.guide.rank),
                    fee_amount=tg.fee_amount,
                    is_leader=tg.guide_id == trip.trip_leader_id,
                )
                for tg in sorted(trip.guides, key=lambda tg: tg.guide.name.lower())
            ),
            cash_received=payments.cash_received if payments else Decimal("0.00"),
            ancillary=payments.ancillary if payments else Decimal("0.00"),
            discount_total=trip.discount_total,
            net_total=trip.net_total,
        )


@dataclass(frozen=True)
class RosterDefect:
    trip_id: UUID
    trip_date: date
    trip_leader_id: UUID


class TripSelector(BaseSelector):
    """Trip queries."""

    def get_trip(self, trip_id: UUID) -> TripView:
        trip = self.session.get(Trip, trip_id)
        if trip is None:
            raise TripNotFoundError(str(trip_id))
        return TripView.from_model(trip)

    def list_trips(
        self,
        actor: Actor,
        *,
        lead_name: str | None = None,
        status: TripStatus | None = None,
        start: date | None = None,
        end: date | None = None,
        note: str | None = None,
    ) -> list[TripView]:
        """
        Trips visible to the actor, newest first.

        Admins see everything; other accounts see trips they created or
        on which their guide is rostered or leads.
        """
        stmt = select(Trip)
        if not actor.is_admin:
            visibility = [Trip.created_by_id == actor.account_id]
            if actor.guide_id is not None:
                visibility.append(Trip.trip_leader_id == actor.guide_id)
                visibility.append(
                    Trip.id.in_(
                        select(TripGuide.trip_id).where(TripGuide.guide_id == actor.guide_id)
                    )
                )
            stmt = stmt.where(or_(*visibility))
        if lead_name:
            stmt = stmt.where(Trip.lead_name.ilike(f"%{lead_name}%"))
        if note:
            stmt = stmt.where(Trip.pax_guide_note.ilike(f"%{note}%"))
        if status is not None:
            stmt = stmt.where(Trip.status == TripStatus(status))
        if start is not None:
            stmt = stmt.where(Trip.trip_date >= start)
        if end is not None:
            stmt = stmt.where(Trip.trip_date <= end)
        stmt = stmt.order_by(Trip.trip_date.desc(), Trip.created_at.desc())

        return [TripView.from_model(trip) for trip in self.session.execute(stmt).scalars()]

    def guide_trip_count(self, guide_id: UUID) -> int:
        """Trips the guide is rostered on or leads."""
        return self.session.execute(
            select(func.count(func.distinct(Trip.id)))
            .select_from(Trip)
            .outerjoin(TripGuide, TripGuide.trip_id == Trip.id)
            .where(or_(TripGuide.guide_id == guide_id, Trip.trip_leader_id == guide_id))
        ).scalar_one()

    def find_roster_defects(self) -> list[RosterDefect]:
        """Trips whose trip leader has no TripGuide row."""
        leader_rostered = (
            select(TripGuide.id)
            .where(
                TripGuide.trip_id == Trip.id,
                TripGuide.guide_id == Trip.trip_leader_id,
            )
            .exists()
        )
        rows = self.session.execute(
            select(Trip.id, Trip.trip_date, Trip.trip_leader_id)
            .where(Trip.trip_leader_id.is_not(None), ~leader_rostered)
            .order_by(Trip.trip_date, Trip.created_at)
        ).all()
        return [RosterDefect(trip_id=r[0], trip_date=r[1], trip_leader_id=r[2]) for r in rows]

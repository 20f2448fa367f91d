"""
GuideService -- admin maintenance of guides and their account links.

Responsibility:
    Creates, renames, re-ranks, deactivates and deletes guides, and links
    sign-in accounts to guide profiles.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/
    and LedgerService for fee rewrites.

Invariants enforced:
    - Guide display names are unique (checked before write, backed by
      uq_guide_name).
    - A guide referenced by any trip or payment exception is never deleted;
      deactivate() keeps the history intact.
    - The Guide/Account link is a weak lookup.  link_account() is the only
      place it changes and copies the guide's name onto the account, with an
      ACCOUNT_LINKED audit row.
    - A guide who leads any trip keeps a rank that may lead.
    - A rank or name change rewrites that guide's stored fees on every
      trip they are rostered on.
    - Every change writes its audit rows in the caller's transaction.

Failure modes:
    - AdminRequiredError for non-admin callers.
    - GuideNotFoundError / AccountNotFoundError for unknown ids.
    - DuplicateGuideNameError, GuideHasTripsError, GuideHasExceptionsError.
    - GuideLeadsTripsError when a demotion would leave trips led by a
      guide whose rank cannot lead.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cashup_kernel.domain.actor import Actor
from cashup_kernel.domain.clock import Clock, SystemClock
from cashup_kernel.domain.rates import DEFAULT_RATE_TABLE, GuideRank, RateTable
from cashup_kernel.domain.requests import GuideRequest
from cashup_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateGuideNameError,
    GuideHasExceptionsError,
    GuideHasTripsError,
    GuideLeadsTripsError,
    GuideNotFoundError,
)
from cashup_kernel.logging_config import LogContext, get_logger
from cashup_kernel.models.account import Account
from cashup_kernel.models.audit_log import AuditAction
from cashup_kernel.models.guide import Guide
from cashup_kernel.models.payment_exception import PaymentException
from cashup_kernel.models.trip import Trip
from cashup_kernel.selectors.trip_selector import TripSelector
from cashup_kernel.services._access import require_admin
from cashup_kernel.services.auditor_service import AuditorService
from cashup_kernel.services.ledger_service import LedgerService

logger = get_logger("services.guides")


class GuideService:
    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        *,
        rates: RateTable = DEFAULT_RATE_TABLE,
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._rates = rates

    def _load(self, guide_id: UUID) -> Guide:
        guide = self._session.get(Guide, guide_id)
        if guide is None:
            raise GuideNotFoundError(str(guide_id))
        return guide

    def _assert_name_free(self, name: str, *, exclude: UUID | None = None) -> None:
        stmt = select(Guide.id).where(func.lower(Guide.name) == name.lower())
        if exclude is not None:
            stmt = stmt.where(Guide.id != exclude)
        if self._session.execute(stmt.limit(1)).scalar_one_or_none() is not None:
            raise DuplicateGuideNameError(name)

    def create_guide(self, actor: Actor, request: GuideRequest) -> Guide:
        require_admin(actor, "create_guide")
        self._assert_name_free(request.name)

        guide = Guide(
            name=request.name,
            rank=request.rank,
            email=request.email,
            active=True,
            created_by_id=actor.account_id,
            created_at=self._clock.now(),
        )
        self._session.add(guide)
        self._session.flush()

        self._auditor.record(
            "Guide", guide.id, AuditAction.GUIDE_CREATED,
            after=guide.to_snapshot(), actor_id=actor.account_id,
        )
        logger.info(
            "guide_created",
            extra={"guide_id": str(guide.id), "rank": guide.rank.value},
        )
        return guide

    def update_guide(self, actor: Actor, guide_id: UUID, request: GuideRequest) -> Guide:
        """
        Rename, re-rank or change the email of a guide.

        A rank or name change feeds the fee engine, so the guide's fee on
        every rostered trip is rewritten and audited as FEES_RECALCULATED.
        A guide who leads trips cannot drop to a rank that may not lead.
        """
        require_admin(actor, "update_guide")
        guide = self._load(guide_id)
        new_rank = GuideRank(request.rank)
        if request.name != guide.name:
            self._assert_name_free(request.name, exclude=guide.id)
        if not new_rank.can_lead:
            led = self._session.execute(
                select(func.count(Trip.id)).where(Trip.trip_leader_id == guide.id)
            ).scalar_one()
            if led:
                raise GuideLeadsTripsError(str(guide.id), new_rank.value, led)

        fee_inputs_changed = new_rank != GuideRank(guide.rank) or request.name != guide.name
        before = guide.to_snapshot()
        guide.name = request.name
        guide.rank = new_rank
        guide.email = request.email
        self._session.flush()

        self._auditor.record(
            "Guide", guide.id, AuditAction.GUIDE_UPDATED,
            before=before, after=guide.to_snapshot(), actor_id=actor.account_id,
        )
        trips_recomputed = 0
        if fee_inputs_changed:
            ledger = LedgerService(self._session, self._auditor, self._rates, self._clock)
            trips_recomputed = len(ledger.recompute_guide_fees(actor, guide.id))
        logger.info(
            "guide_updated",
            extra={"guide_id": str(guide.id), "trips_recomputed": trips_recomputed},
        )
        return guide

    def change_rank(self, actor: Actor, guide_id: UUID, rank: GuideRank) -> Guide:
        guide = self._load(guide_id)
        return self.update_guide(
            actor, guide_id,
            GuideRequest(name=guide.name, rank=GuideRank(rank), email=guide.email),
        )

    def deactivate_guide(self, actor: Actor, guide_id: UUID) -> Guide:
        require_admin(actor, "deactivate_guide")
        guide = self._load(guide_id)
        if not guide.active:
            return guide

        before = guide.to_snapshot()
        guide.active = False
        self._session.flush()

        self._auditor.record(
            "Guide", guide.id, AuditAction.GUIDE_DEACTIVATED,
            before=before, after=guide.to_snapshot(), actor_id=actor.account_id,
        )
        logger.info("guide_deactivated", extra={"guide_id": str(guide.id)})
        return guide

    def delete_guide(self, actor: Actor, guide_id: UUID) -> None:
        require_admin(actor, "delete_guide")
        guide = self._load(guide_id)

        with LogContext.bind(guide_id=str(guide.id)):
            trip_count = TripSelector(self._session).guide_trip_count(guide.id)
            if trip_count:
                raise GuideHasTripsError(str(guide.id), trip_count)

            exception_count = self._session.execute(
                select(func.count(PaymentException.id))
                .where(PaymentException.guide_id == guide.id)
            ).scalar_one()
            if exception_count:
                raise GuideHasExceptionsError(str(guide.id), exception_count)

            self._auditor.record(
                "Guide", guide.id, AuditAction.GUIDE_DELETED,
                before=guide.to_snapshot(), actor_id=actor.account_id,
            )

            unlinked = 0
            for account in self._session.execute(
                select(Account).where(Account.guide_id == guide.id)
            ).scalars():
                account.guide_id = None
                unlinked += 1
            self._session.flush()

            self._session.delete(guide)
            self._session.flush()
            logger.info("guide_deleted", extra={"accounts_unlinked": unlinked})

    def link_account(self, actor: Actor, account_id: UUID, guide_id: UUID | None) -> Account:
        """
        Point an account at a guide profile, or clear the link with None.

        Linking copies the guide's display name onto the account.
        """
        require_admin(actor, "link_account")
        account = self._session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        guide = self._load(guide_id) if guide_id is not None else None

        before = account.to_snapshot()
        account.guide_id = guide.id if guide is not None else None
        if guide is not None:
            account.name = guide.name
        self._session.flush()

        self._auditor.record(
            "Account", account.id, AuditAction.ACCOUNT_LINKED,
            before=before, after=account.to_snapshot(), actor_id=actor.account_id,
        )
        logger.info(
            "account_linked",
            extra={
                "account_id": str(account.id),
                "linked_guide_id": str(guide.id) if guide is not None else None,
            },
        )
        return account

"""
AccountService -- accounts created on first sign-in.

The identity provider authenticates the user; this service turns the
verified email into an Account row and an Actor.  Emails listed in the
admin list get the ADMIN role when the account is first created, and a new
account is linked to the active guide whose email matches.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cashup_kernel.domain.actor import AccountRole, Actor
from cashup_kernel.domain.clock import Clock, SystemClock
from cashup_kernel.exceptions import AccountInactiveError, InvalidFieldError
from cashup_kernel.logging_config import get_logger
from cashup_kernel.models.account import Account
from cashup_kernel.models.audit_log import AuditAction
from cashup_kernel.models.guide import Guide
from cashup_kernel.services.auditor_service import AuditorService

logger = get_logger("services.accounts")


def normalize_email(email: str) -> str:
    if not isinstance(email, str) or "@" not in email:
        raise InvalidFieldError("email", "must be an email address")
    return email.strip().lower()


class AccountService:
    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        admin_emails: Iterable[str] = (),
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._admin_emails = frozenset(e.strip().lower() for e in admin_emails)

    def _matching_guide(self, email: str) -> Guide | None:
        return self._session.execute(
            select(Guide)
            .where(func.lower(Guide.email) == email, Guide.active.is_(True))
            .order_by(Guide.created_at)
            .limit(1)
        ).scalar_one_or_none()

    def ensure_account(self, email: str, name: str | None = None) -> Account:
        """
        Return the account for ``email``, creating it on first sign-in.

        Every call records a SIGN_IN audit row; creation also records
        ACCOUNT_CREATED.
        """
        email = normalize_email(email)
        now = self._clock.now()

        account = self._session.execute(
            select(Account).where(Account.email == email)
        ).scalar_one_or_none()

        if account is None:
            guide = self._matching_guide(email)
            account = Account(
                email=email,
                name=guide.name if guide is not None else name,
                role=AccountRole.ADMIN if email in self._admin_emails else AccountRole.USER,
                active=True,
                guide_id=guide.id if guide is not None else None,
                created_at=now,
            )
            self._session.add(account)
            self._session.flush()
            self._auditor.record(
                "Account", account.id, AuditAction.ACCOUNT_CREATED,
                after=account.to_snapshot(), actor_id=account.id,
            )
            logger.info(
                "account_created",
                extra={
                    "account_id": str(account.id),
                    "role": account.role.value,
                    "linked": account.guide_id is not None,
                },
            )
        elif not account.active:
            logger.warning("sign_in_rejected", extra={"account_id": str(account.id)})
            raise AccountInactiveError(str(account.id))

        account.last_sign_in_at = now
        self._session.flush()
        self._auditor.record(
            "Account", account.id, AuditAction.SIGN_IN,
            after={"email": account.email, "at": now}, actor_id=account.id,
        )
        return account

    @staticmethod
    def actor_for(account: Account) -> Actor:
        if not account.active:
            raise AccountInactiveError(str(account.id))
        return Actor(
            account_id=account.id,
            role=AccountRole(account.role),
            guide_id=account.guide_id,
        )

"""
Tests for AccountService -- first sign-in, admin bootstrap, guide linking.
"""

import pytest
from sqlalchemy import select

from cashup_kernel.domain.actor import AccountRole
from cashup_kernel.domain.rates import GuideRank
from cashup_kernel.exceptions import AccountInactiveError, InvalidFieldError
from cashup_kernel.models.audit_log import AuditAction, AuditLog
from cashup_kernel.services.account_service import AccountService, normalize_email


def actions_for(session, account):
    return [
        row.action
        for row in session.execute(
            select(AuditLog).where(AuditLog.entity_id == str(account.id)).order_by(AuditLog.seq)
        ).scalars()
    ]


class TestEnsureAccount:
    def test_first_sign_in_creates_user(self, session, account_service):
        account = account_service.ensure_account("Visitor@Example.com", name="Vee")

        assert account.email == "visitor@example.com"
        assert account.role == AccountRole.USER
        assert account.guide_id is None
        assert account.name == "Vee"
        assert actions_for(session, account) == [AuditAction.ACCOUNT_CREATED, AuditAction.SIGN_IN]

    def test_admin_email_gets_admin_role(self, account_service):
        account = account_service.ensure_account("BOSS@example.com")
        assert account.role == AccountRole.ADMIN

    def test_links_to_guide_with_matching_email(self, account_service, guides):
        account = account_service.ensure_account("sipho@example.com", name="S. Dlamini")

        assert account.guide_id == guides[GuideRank.SENIOR].id
        assert account.name == "Sipho"

    def test_inactive_guide_not_linked(self, account_service, make_guide):
        make_guide("Retired", GuideRank.SENIOR, "retired@example.com", active=False)
        account = account_service.ensure_account("retired@example.com")
        assert account.guide_id is None

    def test_second_sign_in_only_audits_sign_in(self, session, account_service, deterministic_clock):
        first = account_service.ensure_account("visitor@example.com")
        deterministic_clock.advance(3600)

        second = account_service.ensure_account("visitor@example.com")

        assert second.id == first.id
        assert second.last_sign_in_at == deterministic_clock.now()
        assert actions_for(session, second) == [
            AuditAction.ACCOUNT_CREATED, AuditAction.SIGN_IN, AuditAction.SIGN_IN,
        ]

    def test_role_not_promoted_on_later_sign_in(self, session, auditor_service, deterministic_clock):
        plain = AccountService(session, auditor_service, deterministic_clock)
        plain.ensure_account("late@example.com")

        promoting = AccountService(session, auditor_service, deterministic_clock, ["late@example.com"])
        assert promoting.ensure_account("late@example.com").role == AccountRole.USER

    def test_inactive_account_rejected(self, account_service, captured_logs):
        account = account_service.ensure_account("visitor@example.com")
        account.active = False

        with pytest.raises(AccountInactiveError):
            account_service.ensure_account("visitor@example.com")
        assert any(r["message"] == "sign_in_rejected" for r in captured_logs())

    def test_not_an_email(self, account_service):
        with pytest.raises(InvalidFieldError):
            account_service.ensure_account("not-an-email")


class TestActorFor:
    def test_actor_carries_role_and_guide(self, account_service, guides):
        account = account_service.ensure_account("anna@example.com")

        actor = AccountService.actor_for(account)

        assert actor.account_id == account.id
        assert actor.guide_id == guides[GuideRank.INTERMEDIATE].id
        assert actor.is_admin is False

    def test_inactive_account(self, account_service):
        account = account_service.ensure_account("visitor@example.com")
        account.active = False
        with pytest.raises(AccountInactiveError):
            AccountService.actor_for(account)


def test_normalize_email():
    assert normalize_email("  Someone@Example.COM ") == "someone@example.com"

# Overview: Pytest coverage for the register session lifecycle.

"""
Register Session Lifecycle Tests

Covers:
- Opening: count must match, one active session per register
- Blind close: expected totals, per-channel discrepancies, audit trail
- Void gate: unapproved voids block close and force-close
- Closing alerts: low petty cash, after-hours, delivery failures
- Force close, cancel, register deactivation
- History queries and session summary
"""

from datetime import datetime, time, timedelta
from decimal import Decimal

import pytest
from app.errors import (
    BlockedByUnapprovedVoidsError,
    DuplicateValueError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models import Alert, Register, RegisterSession
from app.models.alerts import ALERT_AFTER_HOURS_CLOSING, ALERT_LOW_PETTY_CASH, PRIORITY_HIGH, PRIORITY_NORMAL
from app.models.sales import (
    METHOD_CARD,
    METHOD_CASH,
    METHOD_QR,
    METHOD_TRANSFER,
    MOVEMENT_DEPOSIT,
    MOVEMENT_EXPENSE,
    MOVEMENT_WITHDRAWAL,
)
from app.services import alert_service, register_service, sales_ledger_service
from app.services.audit_service import list_session_events
from app.services.denomination_service import compute_total
from app.time_utils import utcnow
from conftest import approve_void, record_movement, record_sale, void_sale


def open_with(register, user, breakdown=None, coins=0, **kwargs):
    return register_service.open_session(
        register.id,
        user.id,
        opening_cash=compute_total(breakdown, coins),
        opening_denominations=breakdown,
        coins=coins,
        **kwargs,
    )


def close_with(session, user, breakdown=None, coins=0, **kwargs):
    return register_service.close_session(
        session.id,
        user.id,
        declared_cash=compute_total(breakdown, coins),
        closing_denominations=breakdown,
        coins=coins,
        **kwargs,
    )


class TestOpenSession:

    def test_opening_cash_must_match_count(self, db_session, register, cashier, denominations):
        with pytest.raises(ValidationError):
            register_service.open_session(
                register.id, cashier.id,
                opening_cash=6000,
                opening_denominations={1000: 5, 500: 2},
                coins=50,
            )
        assert register_service.find_active_session(register.id) is None

    def test_open_with_matching_count(self, db_session, register, cashier, denominations):
        session = register_service.open_session(
            register.id, cashier.id,
            opening_cash=6050,
            opening_denominations={1000: 5, 500: 2},
            coins=50,
        )

        assert session.status == "OPEN"
        assert session.opening_cash == Decimal("6050.00")
        assert session.opening_denominations["total"] == "6050.00"
        assert session.opener_id == cashier.id
        assert session.business_date == utcnow().date()
        assert session.session_number == f"R01-{session.business_date:%Y%m%d}-01"
        assert db_session.get(Register, register.id).current_session_id == session.id

    def test_second_open_on_same_register_rejected(self, db_session, register, cashier, manager, denominations):
        open_with(register, cashier)

        with pytest.raises(InvalidStateError):
            open_with(register, manager)

        assert db_session.query(RegisterSession).filter_by(register_id=register.id).count() == 1

    def test_separate_registers_are_independent(self, db_session, branch, register, cashier, manager, denominations):
        other = register_service.create_register({"branch_id": branch.id, "register_number": 2, "name": "Caja 2"})

        open_with(register, cashier)
        second = open_with(other, manager)

        assert second.session_number.startswith("R02-")

    def test_same_register_number_in_two_branches_same_day(
        self, db_session, register, other_branch, cashier, manager, denominations
    ):
        north = register_service.create_register(
            {"branch_id": other_branch.id, "register_number": 1, "name": "Caja 1"}
        )

        first = open_with(register, cashier)
        second = open_with(north, manager)

        assert second.status == "OPEN"
        assert first.session_number == second.session_number
        assert first.branch_id != second.branch_id
        assert register_service.find_active_session(north.id).id == second.id

    def test_inactive_register(self, db_session, register, cashier, denominations):
        register_service.deactivate_register(register.id)

        with pytest.raises(InvalidStateError):
            open_with(register, cashier)

    def test_unknown_register(self, db_session, cashier, denominations):
        with pytest.raises(NotFoundError):
            register_service.open_session(9999, cashier.id, opening_cash=0)

    def test_unknown_opener(self, db_session, register, denominations):
        with pytest.raises(NotFoundError):
            register_service.open_session(register.id, 9999, opening_cash=0)

    def test_bad_shift_type(self, db_session, register, cashier, denominations):
        with pytest.raises(ValidationError):
            open_with(register, cashier, shift_type="NIGHT")

    def test_negative_opening_cash(self, db_session, register, cashier, denominations):
        with pytest.raises(ValidationError):
            register_service.open_session(register.id, cashier.id, opening_cash=-1)

    def test_session_number_sequence_within_a_day(self, db_session, register, cashier, denominations):
        first = open_with(register, cashier)
        register_service.cancel_session(first.id, cashier.id)
        second = open_with(register, cashier)

        assert first.session_number.endswith("-01")
        assert second.session_number.endswith("-02")

    def test_open_writes_audit_event(self, db_session, register, cashier, denominations):
        session = open_with(register, cashier, {500: 2})

        events = list_session_events(session.id)
        assert [e.event_type for e in events] == ["register.session_opened"]
        assert events[0].actor_user_id == cashier.id
        assert events[0].after_state["opening_cash"] == "1000.00"


class TestCloseSession:

    def test_expected_totals_and_discrepancies(self, db_session, branch, register, cashier, manager, denominations):
        session = open_with(register, cashier, {1000: 5, 500: 2}, coins=50)

        record_sale(session.id, branch.id, "2000", method=METHOD_CASH, created_by=cashier.id)
        record_sale(session.id, branch.id, "1500", method=METHOD_CARD, created_by=cashier.id)
        record_sale(session.id, branch.id, "300", method=METHOD_QR, created_by=cashier.id)
        record_sale(session.id, branch.id, "700", method=METHOD_TRANSFER, created_by=cashier.id)
        voided = record_sale(session.id, branch.id, "999", method=METHOD_CASH, created_by=cashier.id)
        void_sale(voided, cashier.id, approved_by=manager.id)
        record_movement(session.id, MOVEMENT_DEPOSIT, "500", cashier.id)
        record_movement(session.id, MOVEMENT_WITHDRAWAL, "1000", manager.id)
        record_movement(session.id, MOVEMENT_EXPENSE, "250", cashier.id)

        expected = sales_ledger_service.get_expected_totals(session.id)
        assert expected.cash == Decimal("7300.00")

        result = close_with(
            session, cashier, {1000: 7, 100: 2}, coins=50,
            declared_card=1500, declared_qr=0, declared_transfer=700,
        )

        assert result.declared.cash == Decimal("7250.00")
        assert result.discrepancy.cash == Decimal("-50.00")
        assert result.discrepancy.card == Decimal("0.00")
        assert result.discrepancy.qr == Decimal("-300.00")
        assert result.discrepancy.transfer == Decimal("0.00")
        assert result.total_discrepancy == Decimal("-350.00")

        stored = db_session.get(RegisterSession, session.id)
        assert stored.status == "CLOSED"
        assert stored.closer_id == cashier.id
        assert stored.closed_at is not None
        assert stored.expected_cash == Decimal("7300.00")
        assert stored.discrepancy_qr == Decimal("-300.00")
        assert stored.closing_denominations["total"] == "7250.00"
        assert db_session.get(Register, register.id).current_session_id is None

    def test_exact_count_has_no_discrepancy(self, db_session, register, cashier, denominations):
        session = open_with(register, cashier, {1000: 2})

        result = close_with(session, cashier, {1000: 2})

        assert result.total_discrepancy == Decimal("0.00")
        assert result.to_dict()["session"]["status"] == "CLOSED"

    def test_declared_cash_must_match_count(self, db_session, register, cashier, denominations):
        session = open_with(register, cashier, {1000: 2})

        with pytest.raises(ValidationError):
            register_service.close_session(
                session.id, cashier.id,
                declared_cash=2100,
                closing_denominations={1000: 2},
            )

        assert db_session.get(RegisterSession, session.id).status == "OPEN"

    def test_close_twice_rejected(self, db_session, register, cashier, denominations):
        session = open_with(register, cashier)
        close_with(session, cashier)

        with pytest.raises(InvalidStateError):
            close_with(session, cashier)

    def test_unknown_session(self, db_session, cashier, denominations):
        with pytest.raises(NotFoundError):
            register_service.close_session(9999, cashier.id, declared_cash=0)

    def test_close_writes_audit_event(self, db_session, register, cashier, denominations):
        session = open_with(register, cashier, {1000: 1})
        close_with(session, cashier, {500: 1}, notes="Short after lunch")

        events = list_session_events(session.id)
        assert [e.event_type for e in events] == ["register.session_opened", "register.session_closed"]
        closed = events[-1]
        assert closed.before_state == {"status": "OPEN"}
        assert closed.after_state["status"] == "CLOSED"
        assert closed.after_state["discrepancy"]["cash"] == "-500.00"
        assert closed.after_state["total_discrepancy"] == "-500.00"
        assert closed.note == "Short after lunch"


class TestVoidGate:

    def test_unapproved_void_blocks_close_until_approved(self, db_session, branch, register, cashier, manager, denominations):
        session = open_with(register, cashier, {1000: 1})
        sale = record_sale(session.id, branch.id, "1500", created_by=cashier.id)
        void_sale(sale, cashier.id)

        with pytest.raises(BlockedByUnapprovedVoidsError) as excinfo:
            close_with(session, cashier, {1000: 1})

        assert excinfo.value.summary.count == 1
        assert excinfo.value.summary.total_amount == Decimal("1500.00")
        assert excinfo.value.to_dict()["unapproved_voids"]["voids"][0]["sale_id"] == sale.id
        assert db_session.get(RegisterSession, session.id).status == "OPEN"

        approve_void(sale, manager.id)

        result = close_with(session, cashier, {1000: 1})
        assert result.session.status == "CLOSED"

    def test_gate_checked_before_count(self, db_session, branch, register, cashier, denominations):
        session = open_with(register, cashier)
        void_sale(record_sale(session.id, branch.id, "200"), cashier.id)

        with pytest.raises(BlockedByUnapprovedVoidsError):
            register_service.close_session(session.id, cashier.id, declared_cash=12345)

    def test_gate_applies_to_force_close(self, db_session, branch, register, cashier, manager, denominations):
        session = open_with(register, cashier)
        void_sale(record_sale(session.id, branch.id, "200"), cashier.id)

        with pytest.raises(BlockedByUnapprovedVoidsError):
            register_service.force_close_session(session.id, manager.id, "Cashier left early")

    def test_unapproved_voids_listing(self, db_session, branch, register, cashier, manager, denominations):
        session = open_with(register, cashier)
        first = record_sale(session.id, branch.id, "100")
        second = record_sale(session.id, branch.id, "250")
        void_sale(first, cashier.id, reason="Duplicate scan")
        void_sale(second, cashier.id, approved_by=manager.id)

        summary = sales_ledger_service.get_unapproved_voids(session.id)

        assert summary.has_unapproved_voids is True
        assert [v.sale_id for v in summary.voids] == [first.id]
        assert summary.voids[0].reason == "Duplicate scan"


class TestClosingAlerts:

    def test_low_petty_cash_alert(self, db_session, branch, register, cashier, denominations):
        branch.petty_cash_amount = Decimal("5000.00")
        db_session.commit()
        session = open_with(register, cashier, {1000: 3})

        result = close_with(session, cashier, {1000: 3})

        assert result.petty_cash_warning.deficit == Decimal("2000.00")
        alerts = alert_service.list_alerts(branch.id, alert_type=ALERT_LOW_PETTY_CASH)
        assert len(alerts) == 1
        assert alerts[0].priority == PRIORITY_HIGH
        assert alerts[0].target_roles == ["OWNER", "MANAGER"]
        assert alerts[0].register_session_id == session.id

    def test_no_alerts_for_normal_close(self, db_session, branch, register, cashier, denominations):
        session = open_with(register, cashier, {1000: 3})
        close_with(session, cashier, {1000: 3})

        assert db_session.query(Alert).count() == 0

    def test_after_hours_alert(self, db_session, branch, register, cashier, denominations, monkeypatch):
        branch.weekday_closing_time = time(20, 0)
        db_session.commit()
        session = open_with(register, cashier)

        monkeypatch.setattr(register_service, "utcnow", lambda: datetime(2026, 3, 16, 23, 0))
        result = close_with(session, cashier)

        assert result.after_hours_warning.local_time == "23:00"
        alerts = alert_service.list_alerts(branch.id, alert_type=ALERT_AFTER_HOURS_CLOSING)
        assert len(alerts) == 1
        assert alerts[0].priority == PRIORITY_NORMAL
        # Informational only
        assert db_session.get(RegisterSession, session.id).status == "CLOSED"

    def test_alert_failure_does_not_undo_close(self, db_session, branch, register, cashier, denominations, monkeypatch):
        branch.petty_cash_amount = Decimal("5000.00")
        db_session.commit()
        session = open_with(register, cashier)

        def boom(**kwargs):
            raise RuntimeError("alert transport down")

        monkeypatch.setattr(alert_service, "emit_alert", boom)
        result = close_with(session, cashier)

        assert result.petty_cash_warning is not None
        assert db_session.get(RegisterSession, session.id).status == "CLOSED"
        assert db_session.query(Alert).count() == 0

    def test_dispatch_is_idempotent(self, db_session, branch, register, cashier, denominations):
        branch.petty_cash_amount = Decimal("5000.00")
        db_session.commit()
        session = open_with(register, cashier)
        result = close_with(session, cashier)

        register_service.dispatch_closing_alerts(result)

        assert db_session.query(Alert).count() == 1


class TestForceCloseAndCancel:

    def test_force_close(self, db_session, register, cashier, manager, denominations):
        session = open_with(register, cashier, {1000: 1})

        closed = register_service.force_close_session(session.id, manager.id, "Cashier went home sick")

        assert closed.status == "CLOSED"
        assert closed.force_close_reason == "Cashier went home sick"
        assert closed.closer_id == manager.id
        assert closed.declared_cash is None
        assert db_session.get(Register, register.id).current_session_id is None
        assert list_session_events(session.id)[-1].event_type == "register.session_force_closed"

    def test_force_close_requires_reason(self, db_session, register, cashier, manager, denominations):
        session = open_with(register, cashier)

        with pytest.raises(ValidationError):
            register_service.force_close_session(session.id, manager.id, "   ")

    def test_cancel_without_sales(self, db_session, register, cashier, denominations):
        session = open_with(register, cashier)

        cancelled = register_service.cancel_session(session.id, cashier.id, "Opened wrong drawer")

        assert cancelled.status == "CANCELLED"
        assert db_session.get(Register, register.id).current_session_id is None
        assert register_service.find_active_session(register.id) is None
        # The register is free again
        assert open_with(register, cashier).status == "OPEN"

    def test_cancel_with_sales_rejected(self, db_session, branch, register, cashier, denominations):
        session = open_with(register, cashier)
        record_sale(session.id, branch.id, "100")

        with pytest.raises(InvalidStateError):
            register_service.cancel_session(session.id, cashier.id)

    def test_cancel_closed_session_rejected(self, db_session, register, cashier, denominations):
        session = open_with(register, cashier)
        close_with(session, cashier)

        with pytest.raises(InvalidStateError):
            register_service.cancel_session(session.id, cashier.id)


class TestRegisters:

    def test_duplicate_register_number(self, db_session, branch, register):
        with pytest.raises(DuplicateValueError):
            register_service.create_register({"branch_id": branch.id, "register_number": 1, "name": "Otra"})

    def test_same_number_in_other_branch(self, db_session, other_branch, register):
        created = register_service.create_register(
            {"branch_id": other_branch.id, "register_number": 1, "name": "Caja 1"}
        )
        assert created.branch_id == other_branch.id

    def test_unknown_branch(self, db_session):
        with pytest.raises(NotFoundError):
            register_service.create_register({"branch_id": 9999, "register_number": 1, "name": "Caja"})

    def test_cannot_deactivate_with_active_session(self, db_session, register, cashier, denominations):
        session = open_with(register, cashier)

        with pytest.raises(InvalidStateError):
            register_service.deactivate_register(register.id)
        with pytest.raises(InvalidStateError):
            register_service.update_register(register.id, {"is_active": False})

        close_with(session, cashier)
        assert register_service.deactivate_register(register.id).is_active is False

    def test_list_registers(self, db_session, branch, register):
        register_service.create_register({"branch_id": branch.id, "register_number": 2, "name": "Caja 2"})
        register_service.deactivate_register(register.id)

        assert [r.register_number for r in register_service.list_registers(branch.id)] == [2]
        assert len(register_service.list_registers(branch.id, include_inactive=True)) == 2

    def test_current_session(self, db_session, register, cashier, denominations):
        assert register_service.get_current_session(register.id) is None
        session = open_with(register, cashier)
        assert register_service.get_current_session(register.id).id == session.id


class TestQueries:

    def test_user_active_session(self, db_session, register, cashier, manager, denominations):
        assert register_service.get_user_active_session(cashier.id) is None
        session = open_with(register, cashier)

        assert register_service.get_user_active_session(cashier.id).id == session.id
        assert register_service.get_user_active_session(manager.id) is None

    def test_list_sessions_filters_and_pages(self, db_session, branch, register, cashier, denominations):
        for _ in range(2):
            register_service.cancel_session(open_with(register, cashier).id, cashier.id)
        open_with(register, cashier)

        everything = register_service.list_sessions(branch_id=branch.id)
        assert everything["count"] == 3
        assert "pagination" not in everything
        assert everything["items"][0]["status"] == "OPEN"

        cancelled = register_service.list_sessions(register_id=register.id, status="CANCELLED")
        assert cancelled["count"] == 2

        page = register_service.list_sessions(branch_id=branch.id, page=1, per_page=2)
        assert page["count"] == 2
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["total_pages"] == 2
        assert page["pagination"]["has_next"] is True

        tomorrow = (utcnow() + timedelta(days=1)).date()
        assert register_service.list_sessions(date_from=tomorrow.isoformat())["count"] == 0

    def test_list_sessions_rejects_bad_filters(self, db_session):
        with pytest.raises(ValidationError):
            register_service.list_sessions(status="PAUSED")
        with pytest.raises(ValidationError):
            register_service.list_sessions(date_from="16/03/2026")

    def test_summary(self, db_session, branch, register, cashier, manager, denominations):
        session = open_with(register, cashier)
        record_sale(session.id, branch.id, "1000", method=METHOD_CASH)
        record_sale(session.id, branch.id, "500", method=METHOD_CARD)
        voided = record_sale(session.id, branch.id, "300")
        void_sale(voided, cashier.id)

        summary = register_service.get_session_summary(session.id)

        assert summary["sales"] == {"count": 2, "total": "1500.00", "average": "750.00"}
        assert summary["voided"] == {"count": 1, "total": "300.00"}
        assert summary["unapproved_voids"]["count"] == 1
        assert {"method": "CARD", "total": "500.00"} in summary["payments"]
        assert "reconciliation" not in summary

        approve_void(voided, manager.id)
        close_with(session, cashier, {1000: 1}, declared_card=500)

        summary = register_service.get_session_summary(session.id)
        assert summary["reconciliation"]["discrepancy"]["cash"] == "0.00"
        assert summary["unapproved_voids"]["has_unapproved_voids"] is False

# Overview: Pytest coverage for the HTTP API (status codes, payloads, access rules).

"""
API Route Tests

SECURITY TESTS: Acting user comes from X-User-Id; role and branch checks are
enforced per route.

Covers:
- Health endpoint
- Session open/close/force-close/cancel/reopen over HTTP
- Error mapping: 400 validation, 401 unauthenticated, 403 denied,
  404 missing, 409 wrong state / blocked by voids
- Register and denomination management
"""

import pytest
from app.services import auth_service, register_service
from app.models.auth import ROLE_CASHIER, ROLE_MANAGER
from conftest import MANAGER_PIN, approve_void, auth_headers, record_sale, void_sale


@pytest.fixture
def outsider(db_session, other_branch):
    """Manager of another branch."""
    return auth_service.create_user("outsider", ROLE_MANAGER, branch_id=other_branch.id, pin="4321")


def open_via_api(client, user, register, opening_cash="0", **body):
    return client.post(
        '/api/sessions/open',
        json={"register_id": register.id, "opening_cash": opening_cash, **body},
        headers=auth_headers(user),
    )


class TestHealth:

    def test_degraded_without_denominations(self, client, db_session):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.json["status"] == "degraded"
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_healthy(self, client, db_session, denominations):
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["denomination_catalog"]["details"]["active_denominations"] == 3


class TestAuthentication:

    def test_missing_header(self, client, db_session, register):
        response = client.post('/api/sessions/open', json={"register_id": register.id, "opening_cash": 0})
        assert response.status_code == 401

    def test_unknown_user(self, client, db_session, register):
        response = client.post(
            '/api/sessions/open',
            json={"register_id": register.id, "opening_cash": 0},
            headers={'X-User-Id': '9999'},
        )
        assert response.status_code == 401

    def test_non_numeric_header(self, client, db_session):
        response = client.get('/api/sessions/mine', headers={'X-User-Id': 'abc'})
        assert response.status_code == 401


class TestSessionRoutes:

    def test_open_and_blind_close(self, client, db_session, register, cashier, denominations):
        response = open_via_api(
            client, cashier, register,
            opening_cash="6050",
            opening_denominations={"1000": 5, "500": 2},
            coins="50",
            shift_type="MORNING",
        )
        assert response.status_code == 201
        session = response.json["session"]
        assert session["status"] == "OPEN"
        assert session["shift_type"] == "MORNING"
        assert session["opening_cash"] == "6050.00"

        response = client.post(
            f'/api/sessions/{session["id"]}/close',
            json={"declared_cash": "6000", "closing_denominations": {"bills_1000": 6}, "declared_card": "0"},
            headers=auth_headers(cashier),
        )

        assert response.status_code == 200
        assert response.json["session"]["status"] == "CLOSED"
        assert response.json["expected"]["cash"] == "6050.00"
        assert response.json["discrepancy"]["cash"] == "-50.00"
        assert response.json["total_discrepancy"] == "-50.00"
        assert response.json["petty_cash_warning"] is None

    def test_open_count_mismatch(self, client, db_session, register, cashier, denominations):
        response = open_via_api(
            client, cashier, register,
            opening_cash="6000",
            opening_denominations={"1000": 5, "500": 2},
            coins="50",
        )

        assert response.status_code == 400
        assert response.json["code"] == "validation_error"

    def test_open_requires_fields(self, client, db_session, cashier):
        response = client.post('/api/sessions/open', json={}, headers=auth_headers(cashier))
        assert response.status_code == 400

    def test_open_bad_register_id(self, client, db_session, cashier):
        response = client.post(
            '/api/sessions/open',
            json={"register_id": "abc", "opening_cash": 0},
            headers=auth_headers(cashier),
        )
        assert response.status_code == 400

    def test_open_unknown_register(self, client, db_session, cashier):
        response = client.post(
            '/api/sessions/open',
            json={"register_id": 9999, "opening_cash": 0},
            headers=auth_headers(cashier),
        )
        assert response.status_code == 404

    def test_second_open_conflicts(self, client, db_session, register, cashier, manager, denominations):
        assert open_via_api(client, cashier, register).status_code == 201

        response = open_via_api(client, manager, register)

        assert response.status_code == 409
        assert response.json["code"] == "invalid_state"

    def test_close_blocked_by_unapproved_void(self, client, db_session, branch, register, cashier, manager, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]
        sale = record_sale(session_id, branch.id, "1500", created_by=cashier.id)
        void_sale(sale, cashier.id)

        response = client.post(
            f'/api/sessions/{session_id}/close', json={"declared_cash": "0"}, headers=auth_headers(cashier)
        )

        assert response.status_code == 409
        assert response.json["code"] == "blocked_by_unapproved_voids"
        assert response.json["unapproved_voids"]["count"] == 1
        assert response.json["unapproved_voids"]["voids"][0]["amount"] == "1500.00"

        listing = client.get(f'/api/sessions/{session_id}/unapproved-voids', headers=auth_headers(cashier))
        assert listing.json["has_unapproved_voids"] is True

        approve_void(sale, manager.id)
        response = client.post(
            f'/api/sessions/{session_id}/close', json={"declared_cash": "0"}, headers=auth_headers(cashier)
        )
        assert response.status_code == 200

    def test_close_requires_declared_cash(self, client, db_session, register, cashier, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        response = client.post(f'/api/sessions/{session_id}/close', json={}, headers=auth_headers(cashier))

        assert response.status_code == 400

    def test_close_unknown_session(self, client, db_session, cashier):
        response = client.post('/api/sessions/9999/close', json={"declared_cash": "0"}, headers=auth_headers(cashier))
        assert response.status_code == 404

    def test_force_close_requires_manager(self, client, db_session, register, cashier, manager, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        denied = client.post(
            f'/api/sessions/{session_id}/force-close', json={"reason": "Left early"}, headers=auth_headers(cashier)
        )
        assert denied.status_code == 403
        assert denied.json["required_roles"] == ["MANAGER", "OWNER"]

        response = client.post(
            f'/api/sessions/{session_id}/force-close', json={"reason": "Left early"}, headers=auth_headers(manager)
        )
        assert response.status_code == 200
        assert response.json["session"]["force_close_reason"] == "Left early"

    def test_force_close_without_reason(self, client, db_session, register, cashier, manager, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        response = client.post(f'/api/sessions/{session_id}/force-close', json={}, headers=auth_headers(manager))

        assert response.status_code == 400

    def test_cancel_by_opener_or_supervisor_only(self, client, db_session, branch, register, cashier, denominations):
        other_cashier = auth_service.create_user("cashier2", ROLE_CASHIER, branch_id=branch.id)
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        denied = client.post(f'/api/sessions/{session_id}/cancel', json={}, headers=auth_headers(other_cashier))
        assert denied.status_code == 403

        response = client.post(
            f'/api/sessions/{session_id}/cancel', json={"reason": "Wrong drawer"}, headers=auth_headers(cashier)
        )
        assert response.status_code == 200
        assert response.json["session"]["status"] == "CANCELLED"

    def test_reopen_flow(self, client, db_session, register, cashier, manager, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        # Still OPEN
        response = client.post(
            f'/api/sessions/{session_id}/reopen',
            json={"reason": "Miscounted", "supervisor_pin": MANAGER_PIN},
            headers=auth_headers(cashier),
        )
        assert response.status_code == 409

        client.post(f'/api/sessions/{session_id}/close', json={"declared_cash": "0"}, headers=auth_headers(cashier))

        short = client.post(
            f'/api/sessions/{session_id}/reopen',
            json={"reason": "Miscount!", "supervisor_pin": MANAGER_PIN},
            headers=auth_headers(cashier),
        )
        assert short.status_code == 400

        wrong_pin = client.post(
            f'/api/sessions/{session_id}/reopen',
            json={"reason": "Miscounted", "supervisor_pin": "0000"},
            headers=auth_headers(cashier),
        )
        assert wrong_pin.status_code == 403

        response = client.post(
            f'/api/sessions/{session_id}/reopen',
            json={"reason": "Miscounted", "supervisor_pin": MANAGER_PIN, "supervisor_user_id": manager.id},
            headers=auth_headers(cashier),
        )
        assert response.status_code == 200
        assert response.json["session"]["status"] == "REOPENED"
        assert response.json["session"]["reopen_authorized_by"] == manager.id
        assert response.json["session"]["declared"]["cash"] is None

    def test_non_string_reason_is_a_bad_request(self, client, db_session, register, cashier, manager, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        force = client.post(
            f'/api/sessions/{session_id}/force-close', json={"reason": 42}, headers=auth_headers(manager)
        )
        assert force.status_code == 400

        cancel = client.post(
            f'/api/sessions/{session_id}/cancel', json={"reason": ["oops"]}, headers=auth_headers(cashier)
        )
        assert cancel.status_code == 400

        client.post(f'/api/sessions/{session_id}/close', json={"declared_cash": "0"}, headers=auth_headers(cashier))
        reopen = client.post(
            f'/api/sessions/{session_id}/reopen',
            json={"reason": {"text": "Miscounted"}, "supervisor_pin": MANAGER_PIN},
            headers=auth_headers(cashier),
        )
        assert reopen.status_code == 400

    def test_close_with_coins_inside_breakdown(self, client, db_session, register, cashier, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        response = client.post(
            f'/api/sessions/{session_id}/close',
            json={"declared_cash": "5050.50", "closing_denominations": {"bills_1000": 5, "coins": 50.5}},
            headers=auth_headers(cashier),
        )

        assert response.status_code == 200
        assert response.json["session"]["closing_denominations"]["coins"] == "50.50"

    def test_reopen_bad_supervisor_id(self, client, db_session, register, cashier, manager, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]
        client.post(f'/api/sessions/{session_id}/close', json={"declared_cash": "0"}, headers=auth_headers(cashier))

        response = client.post(
            f'/api/sessions/{session_id}/reopen',
            json={"reason": "Miscounted", "supervisor_pin": MANAGER_PIN, "supervisor_user_id": "boss"},
            headers=auth_headers(cashier),
        )

        assert response.status_code == 400

    def test_mine_and_get(self, client, db_session, register, cashier, denominations):
        assert client.get('/api/sessions/mine', headers=auth_headers(cashier)).json["session"] is None

        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        mine = client.get('/api/sessions/mine', headers=auth_headers(cashier))
        assert mine.json["session"]["id"] == session_id
        fetched = client.get(f'/api/sessions/{session_id}', headers=auth_headers(cashier))
        assert fetched.status_code == 200
        assert client.get('/api/sessions/9999', headers=auth_headers(cashier)).status_code == 404

    def test_summary(self, client, db_session, branch, register, cashier, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]
        record_sale(session_id, branch.id, "250")

        response = client.get(f'/api/sessions/{session_id}/summary', headers=auth_headers(cashier))

        assert response.status_code == 200
        assert response.json["sales"]["count"] == 1
        assert response.json["session"]["id"] == session_id


class TestBranchScope:

    def test_other_branch_manager_denied(self, client, db_session, register, cashier, outsider, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        assert client.get(f'/api/sessions/{session_id}', headers=auth_headers(outsider)).status_code == 403
        response = client.post(
            f'/api/sessions/{session_id}/force-close', json={"reason": "Not mine"}, headers=auth_headers(outsider)
        )
        assert response.status_code == 403
        assert open_via_api(client, outsider, register).status_code == 403

    def test_owner_sees_every_branch(self, client, db_session, register, cashier, owner, denominations):
        session_id = open_via_api(client, cashier, register).json["session"]["id"]

        assert client.get(f'/api/sessions/{session_id}', headers=auth_headers(owner)).status_code == 200
        response = client.post(
            f'/api/sessions/{session_id}/force-close', json={"reason": "Closing store"}, headers=auth_headers(owner)
        )
        assert response.status_code == 200

    def test_list_is_scoped_to_own_branch(self, client, db_session, branch, register, cashier, outsider, owner, denominations):
        open_via_api(client, cashier, register)

        mine = client.get('/api/sessions', headers=auth_headers(cashier))
        assert mine.status_code == 200
        assert mine.json["count"] == 1

        theirs = client.get('/api/sessions', headers=auth_headers(outsider))
        assert theirs.json["count"] == 0

        denied = client.get(f'/api/sessions?branch_id={branch.id}', headers=auth_headers(outsider))
        assert denied.status_code == 403

        everything = client.get('/api/sessions?page=1&per_page=10', headers=auth_headers(owner))
        assert everything.json["count"] == 1
        assert everything.json["pagination"]["total"] == 1

    def test_list_rejects_bad_status(self, client, db_session, cashier):
        response = client.get('/api/sessions?status=PAUSED', headers=auth_headers(cashier))
        assert response.status_code == 400


class TestRegisterRoutes:

    def test_create_defaults_to_own_branch(self, client, db_session, branch, manager):
        response = client.post(
            '/api/registers', json={"register_number": 3, "name": "Caja 3"}, headers=auth_headers(manager)
        )

        assert response.status_code == 201
        assert response.json["register"]["branch_id"] == branch.id

    def test_cashier_cannot_create(self, client, db_session, cashier):
        response = client.post(
            '/api/registers', json={"register_number": 3, "name": "Caja 3"}, headers=auth_headers(cashier)
        )
        assert response.status_code == 403

    def test_duplicate_number(self, client, db_session, register, manager):
        response = client.post(
            '/api/registers', json={"register_number": 1, "name": "Otra"}, headers=auth_headers(manager)
        )
        assert response.status_code == 409

    def test_list_and_current_session(self, client, db_session, register, cashier, denominations):
        listing = client.get('/api/registers', headers=auth_headers(cashier))
        assert listing.json["count"] == 1

        assert client.get(
            f'/api/registers/{register.id}/current-session', headers=auth_headers(cashier)
        ).json["session"] is None

        session_id = open_via_api(client, cashier, register).json["session"]["id"]
        current = client.get(f'/api/registers/{register.id}/current-session', headers=auth_headers(cashier))
        assert current.json["session"]["id"] == session_id

    def test_deactivate_with_active_session(self, client, db_session, register, cashier, manager, denominations):
        open_via_api(client, cashier, register)

        response = client.post(f'/api/registers/{register.id}/deactivate', headers=auth_headers(manager))

        assert response.status_code == 409

    def test_rename(self, client, db_session, register, manager):
        response = client.patch(
            f'/api/registers/{register.id}', json={"name": "Caja principal"}, headers=auth_headers(manager)
        )

        assert response.status_code == 200
        assert response.json["register"]["name"] == "Caja principal"
        assert register_service.get_register(register.id).name == "Caja principal"

    def test_unknown_field_rejected(self, client, db_session, register, manager):
        response = client.patch(
            f'/api/registers/{register.id}', json={"current_session_id": 5}, headers=auth_headers(manager)
        )
        assert response.status_code == 400


class TestDenominationRoutes:

    def test_list(self, client, db_session, cashier, denominations):
        response = client.get('/api/denominations', headers=auth_headers(cashier))

        assert response.status_code == 200
        assert [d["value"] for d in response.json["denominations"]] == ["1000.00", "500.00", "100.00"]

        with_inactive = client.get('/api/denominations?include_inactive=true', headers=auth_headers(cashier))
        assert with_inactive.json["count"] == 4

    def test_create_update_delete(self, client, db_session, manager, denominations):
        created = client.post(
            '/api/denominations',
            json={"value": "2000", "label": "$2.000", "display_order": 0},
            headers=auth_headers(manager),
        )
        assert created.status_code == 201
        denomination_id = created.json["denomination"]["id"]

        duplicate = client.post(
            '/api/denominations', json={"value": 2000, "label": "Dos mil"}, headers=auth_headers(manager)
        )
        assert duplicate.status_code == 409

        updated = client.put(
            f'/api/denominations/{denomination_id}', json={"label": "Dos mil"}, headers=auth_headers(manager)
        )
        assert updated.json["denomination"]["label"] == "Dos mil"

        deleted = client.delete(f'/api/denominations/{denomination_id}', headers=auth_headers(manager))
        assert deleted.status_code == 200
        assert deleted.json["denomination"]["is_active"] is False
        assert client.get(
            f'/api/denominations/{denomination_id}', headers=auth_headers(manager)
        ).status_code == 200

    def test_cashier_cannot_write(self, client, db_session, cashier, denominations):
        response = client.post(
            '/api/denominations', json={"value": "2000", "label": "$2.000"}, headers=auth_headers(cashier)
        )
        assert response.status_code == 403

    def test_reorder(self, client, db_session, manager, denominations):
        response = client.post(
            '/api/denominations/reorder',
            json={"items": [{"id": denominations[100].id, "display_order": 0}]},
            headers=auth_headers(manager),
        )
        assert response.status_code == 200

        missing = client.post(
            '/api/denominations/reorder',
            json=[{"id": 99999, "display_order": 0}],
            headers=auth_headers(manager),
        )
        assert missing.status_code == 404

    def test_owner_can_write(self, client, db_session, owner):
        response = client.post(
            '/api/denominations', json={"value": "5", "label": "$5"}, headers=auth_headers(owner)
        )
        assert response.status_code == 201

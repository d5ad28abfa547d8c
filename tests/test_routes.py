"""
Test the HTTP API: authentication, envelopes and status codes.
"""

from decimal import Decimal

from conftest import SUPERADMIN_KEY, ALICE_KEY, BOB_KEY, CAROL_KEY

GAMES = "/api/v1/admin/games"
WITHDRAWALS = "/api/v1/admin/withdrawals"


def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["services"]["database"] == "healthy"


def test_root_info(api):
    response = api.get("/")

    assert response.status_code == 200
    assert response.json()["data"]["websocket"] == "/ws/admin"


def test_missing_api_key_is_unauthorized(api):
    response = api.get(f"{GAMES}/profiles")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "AUTHENTICATION_ERROR"


def test_unknown_api_key_is_unauthorized(api):
    response = api.get(f"{GAMES}/profiles", api_key="not-a-real-key")

    assert response.status_code == 401


def test_inactive_admin_is_unauthorized(api):
    api.run(api.seed.admin, "dave", "admin", "dave-key", is_active=False)

    response = api.get(f"{GAMES}/profiles", api_key="dave-key")

    assert response.status_code == 401


def test_admin_with_unsupported_role_is_forbidden(api):
    api.run(api.seed.admin, "erin", "auditor", "erin-key")

    response = api.get(f"{GAMES}/profiles", api_key="erin-key")

    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"
    assert response.json()["details"]["role"] == "auditor"


def test_approve_credit_flow(api):
    user_id = api.run(api.seed.user, "u1", "alice", balance="80.00")
    api.run(api.seed.credit_request, user_id, "firekirin", "20.00")

    response = api.post(
        f"{GAMES}/approve-credit",
        {"userId": user_id, "gameName": "firekirin"},
        api_key=ALICE_KEY
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Credit amount approved successfully"
    assert body["data"]["gameProfile"]["creditAmount"]["status"] == "success"

    again = api.post(
        f"{GAMES}/approve-credit",
        {"userId": user_id, "gameName": "firekirin"},
        api_key=ALICE_KEY
    )
    assert again.status_code == 404
    assert again.json()["error"] == "NOT_FOUND"


def test_disapprove_credit_refunds(api):
    user_id = api.run(api.seed.user, "u1", "alice", balance="80.00")
    api.run(api.seed.credit_request, user_id, "firekirin", "20.00")

    response = api.post(
        f"{GAMES}/disapprove-credit",
        {"userId": user_id, "gameName": "firekirin"},
        api_key=ALICE_KEY
    )

    assert response.status_code == 200
    assert response.json()["data"]["wallet"]["currentBalance"] == 100.0
    assert api.run(api.seed.wallet, user_id).total_balance_usd == Decimal("100.00")


def test_approve_redeem(api):
    user_id = api.run(api.seed.user, "u1", "alice", balance="100.00")
    api.run(api.seed.redeem_request, user_id, "firekirin", "50.00", tips="5.00", credit_amount="50.00")

    response = api.post(
        f"{GAMES}/approve-redeem",
        {"userId": user_id, "gameName": "firekirin"},
        api_key=SUPERADMIN_KEY
    )

    assert response.status_code == 200
    assert response.json()["data"]["wallet"]["currentBalance"] == 145.0


def test_disapprove_redeem(api):
    user_id = api.run(api.seed.user, "u1", "alice")
    api.run(api.seed.redeem_request, user_id, "firekirin", "50.00")

    response = api.post(
        f"{GAMES}/disapprove-redeem",
        {"userId": user_id, "gameName": "firekirin"},
        api_key=ALICE_KEY
    )

    assert response.status_code == 200
    assert response.json()["data"]["transaction"]["status"] == "rejected"


def test_out_of_scope_admin_is_forbidden(api):
    user_id = api.run(api.seed.user, "u1", "alice", balance="80.00")
    api.run(api.seed.credit_request, user_id, "firekirin", "20.00")

    response = api.post(
        f"{GAMES}/approve-credit",
        {"userId": user_id, "gameName": "firekirin"},
        api_key=BOB_KEY
    )

    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"
    assert api.run(api.seed.profile, user_id, "firekirin").credit_status == "pending"


def test_missing_fields_are_validation_errors(api):
    response = api.post(f"{GAMES}/approve-credit", {"userId": ""}, api_key=ALICE_KEY)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert set(body["details"]["missing"]) == {"user_id", "game_name"}


def test_malformed_body_is_validation_error(api):
    response = api.post(f"{GAMES}/approve-credit", {"userId": ["x"]}, api_key=ALICE_KEY)

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


def test_assign_game_id_and_conflict(api):
    user_id = api.run(api.seed.user, "u1", "alice")
    api.run(api.seed.game, user_id, "firekirin", profile_status="pending")

    body = {"userId": user_id, "gameName": "firekirin", "gameId": "FK-1", "gamePassword": "pw"}
    response = api.post(f"{GAMES}/assign-gameid", body, api_key=ALICE_KEY)

    assert response.status_code == 200
    assert response.json()["data"]["games"][0]["profileStatus"] == "active"

    conflict = api.post(f"{GAMES}/assign-gameid", {**body, "gameId": "FK-2"}, api_key=ALICE_KEY)

    assert conflict.status_code == 409
    assert conflict.json()["error"] == "CONFLICT"
    assert conflict.json()["details"]["existing_game_id"] == "FK-1"


def test_game_views(api):
    alice_user = api.run(api.seed.user, "a1", "alice")
    bob_user = api.run(api.seed.user, "b1", "bob")
    api.run(api.seed.credit_request, alice_user, "firekirin", "20.00")
    api.run(api.seed.game, bob_user, "juwa", profile_status="pending")

    profiles = api.get(f"{GAMES}/profiles", api_key=ALICE_KEY).json()["data"]
    assert profiles["count"] == 1
    assert profiles["profiles"][0]["userId"] == alice_user

    statistics = api.get(f"{GAMES}/statistics", api_key=SUPERADMIN_KEY).json()["data"]
    assert statistics["totalProfiles"] == 2
    assert statistics["totalPendingProfiles"] == 1
    assert statistics["pendingCreditRequests"] == 1

    pending = api.get(f"{GAMES}/pending-requests", api_key=BOB_KEY).json()["data"]
    assert [p["userId"] for p in pending["profiles"]] == [bob_user]
    assert pending["creditRequests"] == []

    empty = api.get(f"{GAMES}/profiles", api_key=CAROL_KEY).json()["data"]
    assert empty == {"count": 0, "profiles": []}


def test_withdrawal_routes(api):
    user_id = api.run(api.seed.user, "u1", "alice", balance="75.00")
    first = api.run(api.seed.transaction, user_id, "withdrawal", "-25.00", asset="USDT")
    second = api.run(api.seed.transaction, user_id, "withdrawal", "-5.00", asset="USDT")

    pending = api.get(f"{WITHDRAWALS}/pending", api_key=ALICE_KEY).json()["data"]
    assert pending["count"] == 2

    approved = api.post(
        f"{WITHDRAWALS}/approve",
        {"userId": user_id, "withdrawalId": str(first), "txHash": "0xfeed"},
        api_key=ALICE_KEY
    )
    assert approved.status_code == 200
    assert approved.json()["data"]["transaction"]["txHash"] == "0xfeed"

    rejected = api.post(
        f"{WITHDRAWALS}/disapprove",
        {"userId": user_id, "withdrawalId": second},
        api_key=ALICE_KEY
    )
    assert rejected.status_code == 200
    assert rejected.json()["data"]["refundAmount"] == 5.0
    assert rejected.json()["data"]["wallet"]["currentBalance"] == 80.0

    bad_id = api.post(
        f"{WITHDRAWALS}/approve",
        {"userId": user_id, "withdrawalId": "not-a-number"},
        api_key=ALICE_KEY
    )
    assert bad_id.status_code == 404

    assert api.get(f"{WITHDRAWALS}/pending", api_key=ALICE_KEY).json()["data"]["count"] == 0


def test_user_routes(api):
    alice_user = api.run(api.seed.user, "a1", "alice")
    api.run(api.seed.user, "b1", "bob")

    listing = api.get("/api/v1/users", api_key=ALICE_KEY).json()["data"]
    assert [u["id"] for u in listing["users"]] == [alice_user]

    assert api.get(f"/api/v1/users/{alice_user}", api_key=BOB_KEY).status_code == 403
    assert api.get("/api/v1/users/missing", api_key=ALICE_KEY).status_code == 404

    updated = api.put(
        f"/api/v1/users/{alice_user}",
        {"email": "new@example.com", "isActive": False},
        api_key=ALICE_KEY
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["email"] == "new@example.com"
    assert updated.json()["data"]["isActive"] is False


def test_role_change_requires_superadmin(api):
    user_id = api.run(api.seed.user, "a1", "alice")

    denied = api.put(f"/api/v1/users/{user_id}", {"role": "admin"}, api_key=ALICE_KEY)
    assert denied.status_code == 403

    invalid = api.put(f"/api/v1/users/{user_id}", {"role": "owner"}, api_key=SUPERADMIN_KEY)
    assert invalid.status_code == 400

    allowed = api.put(f"/api/v1/users/{user_id}", {"role": "admin"}, api_key=SUPERADMIN_KEY)
    assert allowed.status_code == 200
    assert allowed.json()["data"]["role"] == "admin"


def test_wallet_routes(api):
    user_id = api.run(api.seed.user, "a1", "alice", balance="12.50")
    api.run(api.seed.user, "b1", "bob")

    listing = api.get("/api/v1/wallets", api_key=ALICE_KEY).json()["data"]
    assert listing["count"] == 1

    wallet = api.get(f"/api/v1/wallets/{user_id}", api_key=ALICE_KEY).json()["data"]
    assert wallet["totalBalanceUSD"] == 12.5

    no_wallet = api.run(api.seed.user, "a2", "alice", balance=None)
    assert api.get(f"/api/v1/wallets/{no_wallet}", api_key=ALICE_KEY).status_code == 404


def test_websocket_stats_endpoint(api):
    response = api.get("/ws/stats")

    assert response.status_code == 200
    assert response.json()["data"]["total_connections"] == 0

"""
Test withdrawal approval and rejection.
"""

from decimal import Decimal

import pytest

from bigwin_admin.core.exceptions import (
    PendingRequestNotFoundError, ScopeViolationError, ValidationError
)
from bigwin_admin.services.withdrawal_service import WithdrawalService, parse_withdrawal_id

from conftest import SUPERADMIN, ALICE, BOB


@pytest.fixture
def service(session_maker) -> WithdrawalService:
    return WithdrawalService(session_maker)


async def pending_withdrawal(seed, user_id: str, amount: str = "25.00") -> int:
    return await seed.transaction(
        user_id,
        "withdrawal",
        f"-{amount}",
        asset="USDT",
        network="TRC20",
        withdrawal_address="TXYZ123",
    )


@pytest.mark.asyncio
async def test_approve_withdrawal_records_hash(service, seed):
    user_id = await seed.user("u1", assigned_admin="alice", balance="75.00")
    tx_id = await pending_withdrawal(seed, user_id)

    result = await service.approve_withdrawal(ALICE, user_id, str(tx_id), tx_hash="0xabc")

    assert result["transaction"]["status"] == "completed"
    assert result["transaction"]["txHash"] == "0xabc"

    tx = await seed.tx(tx_id)
    assert tx.status == "completed"
    assert tx.tx_hash == "0xabc"
    assert (await seed.wallet(user_id)).total_balance_usd == Decimal("75.00")


@pytest.mark.asyncio
async def test_approve_withdrawal_without_hash(service, seed):
    user_id = await seed.user("u1", assigned_admin="alice")
    tx_id = await pending_withdrawal(seed, user_id)

    result = await service.approve_withdrawal(ALICE, user_id, tx_id)

    assert result["transaction"]["status"] == "completed"
    assert result["transaction"]["txHash"] is None


@pytest.mark.asyncio
async def test_blank_hash_is_stored_as_null(service, seed):
    user_id = await seed.user("u1", assigned_admin="alice")
    tx_id = await pending_withdrawal(seed, user_id)

    result = await service.approve_withdrawal(ALICE, user_id, str(tx_id), tx_hash="")

    assert result["transaction"]["txHash"] is None
    assert (await seed.tx(tx_id)).tx_hash is None


@pytest.mark.asyncio
async def test_disapprove_withdrawal_refunds(service, seed):
    user_id = await seed.user("u1", assigned_admin="alice", balance="75.00")
    tx_id = await pending_withdrawal(seed, user_id, "25.00")

    result = await service.disapprove_withdrawal(ALICE, user_id, str(tx_id))

    assert result["refundAmount"] == 25.0
    assert result["wallet"]["currentBalance"] == 100.0
    assert result["transaction"]["status"] == "rejected"
    assert (await seed.wallet(user_id)).total_balance_usd == Decimal("100.00")


@pytest.mark.asyncio
async def test_processed_withdrawal_cannot_be_processed_again(service, seed):
    user_id = await seed.user("u1", assigned_admin="alice", balance="75.00")
    tx_id = await pending_withdrawal(seed, user_id)

    await service.disapprove_withdrawal(ALICE, user_id, str(tx_id))

    with pytest.raises(PendingRequestNotFoundError):
        await service.disapprove_withdrawal(ALICE, user_id, str(tx_id))

    with pytest.raises(PendingRequestNotFoundError):
        await service.approve_withdrawal(ALICE, user_id, str(tx_id))

    # Refunded exactly once
    assert (await seed.wallet(user_id)).total_balance_usd == Decimal("100.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("withdrawal_id", ["abc", "12x", "-1", "999999", "²"])
async def test_unknown_withdrawal_id_is_not_found(service, seed, withdrawal_id):
    user_id = await seed.user("u1", assigned_admin="alice")
    await pending_withdrawal(seed, user_id)

    with pytest.raises(PendingRequestNotFoundError) as exc_info:
        await service.approve_withdrawal(ALICE, user_id, withdrawal_id)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_withdrawal_of_another_user_is_not_found(service, seed):
    owner = await seed.user("u1", assigned_admin="alice")
    other = await seed.user("u2", assigned_admin="alice")
    tx_id = await pending_withdrawal(seed, owner)

    with pytest.raises(PendingRequestNotFoundError):
        await service.approve_withdrawal(ALICE, other, str(tx_id))


@pytest.mark.asyncio
async def test_credit_hold_is_not_a_withdrawal(service, seed):
    user_id = await seed.user("u1", assigned_admin="alice")
    tx_id = await seed.credit_request(user_id, "firekirin", "10.00")

    with pytest.raises(PendingRequestNotFoundError):
        await service.approve_withdrawal(SUPERADMIN, user_id, str(tx_id))


@pytest.mark.asyncio
async def test_out_of_scope_admin_is_forbidden(service, seed):
    user_id = await seed.user("u1", assigned_admin="alice", balance="75.00")
    tx_id = await pending_withdrawal(seed, user_id)

    with pytest.raises(ScopeViolationError):
        await service.disapprove_withdrawal(BOB, user_id, str(tx_id))

    assert (await seed.tx(tx_id)).status == "pending"
    assert (await seed.wallet(user_id)).total_balance_usd == Decimal("75.00")


@pytest.mark.asyncio
async def test_missing_withdrawal_id_is_rejected(service):
    with pytest.raises(ValidationError):
        await service.approve_withdrawal(ALICE, "user-1", None)


@pytest.mark.parametrize("value,expected", [
    ("42", 42),
    (42, 42),
    (" 7 ", 7),
    ("abc", None),
    ("-3", None),
    ("1.5", None),
    ("²", None),
    ("٣", None),
])
def test_parse_withdrawal_id(value, expected):
    assert parse_withdrawal_id(value) == expected

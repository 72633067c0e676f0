"""
Tests for the consumed-payment store
"""
import pytest

from paygate.errors import PaymentAlreadyUsed


def test_claim_is_single_use(replay_guard):
    replay_guard.claim_sync("0xABC", "balance")

    with pytest.raises(PaymentAlreadyUsed):
        replay_guard.claim_sync("0xabc", "transfer")
    assert replay_guard.is_consumed("0xAbC") is True


def test_release_makes_reference_claimable_again(replay_guard):
    replay_guard.claim_sync("0xabc", "transfer")
    replay_guard.release_sync("0xabc")

    assert replay_guard.is_consumed("0xabc") is False
    replay_guard.claim_sync("0xabc", "transfer")


@pytest.mark.asyncio
async def test_async_claim(replay_guard):
    await replay_guard.claim("0xdef", "balance")

    with pytest.raises(PaymentAlreadyUsed):
        await replay_guard.claim("0xdef", "balance")

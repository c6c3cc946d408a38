"""
Tests for ApprovalManager.
"""

import pytest

from stablebridge.core.approval import ApprovalManager
from stablebridge.core.errors import ApprovalFailedError, RpcError
from stablebridge.core.tokens import MAX_UINT256

OWNER = "0x9999999999999999999999999999999999999999"


class TestApprovalManager:
    """Approvals are only submitted when the allowance is short."""

    def test_lock_unlock_approves_when_allowance_short(self, registry, make_client):
        descriptor = registry.lookup("ethereum")
        client = make_client(allowance=0)

        result = ApprovalManager(client).ensure_approved(descriptor, OWNER, 100_000_000)

        assert result.approved is True
        assert result.tx_hash is not None
        address, name, args, value = client.transactions[0]
        assert (address, name) == (descriptor.token_address, "approve")
        assert args == (descriptor.oft_address, MAX_UINT256)
        assert value == 0

    def test_second_call_is_a_no_op(self, registry, make_client):
        descriptor = registry.lookup("ethereum")
        client = make_client(allowance=0)
        manager = ApprovalManager(client)

        manager.ensure_approved(descriptor, OWNER, 100_000_000)
        second = manager.ensure_approved(descriptor, OWNER, 100_000_000)

        assert second.approved is False
        assert second.allowance == MAX_UINT256
        assert client.transaction_names == ["approve"]

    def test_sufficient_allowance_skips(self, registry, make_client):
        client = make_client(allowance=100_000_000)
        result = ApprovalManager(client).ensure_approved(registry.lookup("ethereum"), OWNER, 100_000_000)
        assert result.approved is False
        assert client.transactions == []

    def test_mint_burn_reads_nothing(self, registry, make_client):
        client = make_client()
        result = ApprovalManager(client).ensure_approved(registry.lookup("sei"), OWNER, 100_000_000)
        assert result.approved is False
        assert client.calls == []
        assert client.transactions == []

    def test_allowance_read_failure(self, registry, make_client):
        client = make_client()
        client.fail_on["allowance"] = RpcError("rpc down")
        with pytest.raises(ApprovalFailedError) as exc_info:
            ApprovalManager(client).ensure_approved(registry.lookup("ethereum"), OWNER, 1)
        assert exc_info.value.stage == "approval"

    def test_approve_revert(self, registry, make_client, reverted):
        client = make_client()
        client.fail_on["approve"] = reverted
        with pytest.raises(ApprovalFailedError) as exc_info:
            ApprovalManager(client).ensure_approved(registry.lookup("ethereum"), OWNER, 1)
        assert exc_info.value.cause is reverted

    def test_approve_timeout_carries_hash(self, registry, make_client, timed_out):
        client = make_client()
        client.fail_on["approve"] = timed_out
        with pytest.raises(ApprovalFailedError) as exc_info:
            ApprovalManager(client).ensure_approved(registry.lookup("ethereum"), OWNER, 1)
        assert exc_info.value.tx_hash == timed_out.tx_hash
        assert exc_info.value.retryable

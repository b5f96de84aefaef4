"""
Tests for wallet capability detection and the session context
"""

import pytest
from unittest.mock import AsyncMock

from dustswap.core.wallet.capabilities import (
    CapabilityDetector,
    account_kind_from_code,
    parse_atomic_support,
)
from dustswap.core.wallet.models import AccountKind, SessionContext, WalletCapabilities, WalletContext


ADDRESS = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"
BASE = 8453


def make_detector(capabilities=None, code="0x", capabilities_error=None, code_error=None):
    wallet_client = AsyncMock()
    wallet_client.get_capabilities = AsyncMock(
        return_value=capabilities or {},
        side_effect=capabilities_error,
    )
    chain_reader = AsyncMock()
    chain_reader.get_code = AsyncMock(return_value=code, side_effect=code_error)
    return CapabilityDetector(wallet_client, chain_reader), wallet_client, chain_reader


# =============================================================================
# Parsing Tests
# =============================================================================

class TestParseAtomicSupport:

    @pytest.mark.parametrize("status", ["supported", "ready"])
    def test_atomic_status(self, status):
        assert parse_atomic_support({"0x2105": {"atomic": {"status": status}}}, BASE) is True

    def test_atomic_unsupported(self):
        assert parse_atomic_support({"0x2105": {"atomic": {"status": "unsupported"}}}, BASE) is False

    def test_legacy_atomic_batch_flag(self):
        assert parse_atomic_support({"0x2105": {"atomicBatch": {"supported": True}}}, BASE) is True

    def test_other_chain_only(self):
        """Support on another chain says nothing about the active one."""
        assert parse_atomic_support({"0x1": {"atomic": {"status": "supported"}}}, BASE) is False

    def test_unkeyed_payload(self):
        assert parse_atomic_support({"atomic": {"status": "supported"}}, BASE) is True

    @pytest.mark.parametrize("payload", [{}, None, [], "yes"])
    def test_garbage_is_unsupported(self, payload):
        assert parse_atomic_support(payload, BASE) is False

    def test_account_kind_from_code(self):
        assert account_kind_from_code("0x") == AccountKind.PLAIN
        assert account_kind_from_code("0x6080604052") == AccountKind.CONTRACT
        assert account_kind_from_code(None) == AccountKind.UNKNOWN


# =============================================================================
# Detector Tests
# =============================================================================

class TestCapabilityDetector:

    @pytest.mark.asyncio
    async def test_detects_and_caches_per_session(self):
        detector, wallet_client, chain_reader = make_detector(
            capabilities={"0x2105": {"atomic": {"status": "supported"}}},
            code="0x6080",
        )
        session = SessionContext(wallet=WalletContext(ADDRESS, BASE))

        first = await detector.detect(session)
        second = await detector.detect(session)

        assert first == WalletCapabilities(atomic_batch_supported=True, account_kind=AccountKind.CONTRACT)
        assert second is first
        wallet_client.get_capabilities.assert_awaited_once_with(ADDRESS, BASE)
        chain_reader.get_code.assert_awaited_once_with(ADDRESS)

    @pytest.mark.asyncio
    async def test_capability_query_failure_is_conservative(self):
        detector, _, _ = make_detector(capabilities_error=RuntimeError("method not supported"))

        capabilities = await detector.detect_uncached(WalletContext(ADDRESS, BASE))

        assert capabilities.atomic_batch_supported is False
        assert capabilities.account_kind == AccountKind.PLAIN

    @pytest.mark.asyncio
    async def test_code_lookup_failure_is_unknown(self):
        detector, _, _ = make_detector(
            capabilities={"0x2105": {"atomic": {"status": "ready"}}},
            code_error=RuntimeError("rpc down"),
        )

        capabilities = await detector.detect_uncached(WalletContext(ADDRESS, BASE))

        assert capabilities.atomic_batch_supported is True
        assert capabilities.account_kind == AccountKind.UNKNOWN


# =============================================================================
# Session Context Tests
# =============================================================================

class TestSessionContext:

    def test_same_wallet_keeps_cache(self):
        session = SessionContext(wallet=WalletContext(ADDRESS, BASE))
        session.remember(WalletCapabilities(atomic_batch_supported=True))

        same = session.for_wallet(WalletContext(ADDRESS.upper().replace("0X", "0x"), BASE, user_id="42"))

        assert same is session
        assert same.cached_capabilities.atomic_batch_supported is True
        assert same.wallet.user_id == "42"

    def test_chain_switch_rebuilds_context(self):
        session = SessionContext(wallet=WalletContext(ADDRESS, BASE))
        session.remember(WalletCapabilities(atomic_batch_supported=True))

        switched = session.for_wallet(WalletContext(ADDRESS, 1))

        assert switched is not session
        assert switched.cached_capabilities is None

    def test_conservative_default(self):
        caps = WalletCapabilities.conservative()
        assert caps.atomic_batch_supported is False
        assert caps.to_dict() == {"atomicBatchSupported": False, "accountKind": "unknown"}

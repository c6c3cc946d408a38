"""
Tests for amount handling, executor options and transfer request construction.
"""

from decimal import Decimal

import pytest

from stablebridge.core.errors import InvalidAmountError
from stablebridge.core.options import build_lz_receive_options, decode_lz_receive_gas
from stablebridge.core.request import TransferRequest, build_transfer_request
from stablebridge.core.utils import (
    address_to_bytes32,
    calculate_min_amount,
    format_amount,
    format_native,
    parse_amount,
    slippage_to_bps,
    truncate_address,
)

RECIPIENT = "0x8888888888888888888888888888888888888888"


class TestAmounts:
    """Tests for decimal amount conversion."""

    @pytest.mark.parametrize(
        "value,expected",
        [("100", 100_000_000), ("0.000001", 1), ("12.5", 12_500_000), (Decimal("1.10"), 1_100_000), (7, 7_000_000)],
    )
    def test_parse_amount(self, value, expected):
        assert parse_amount(value) == expected

    def test_parse_amount_rejects_float(self):
        with pytest.raises(InvalidAmountError, match="float"):
            parse_amount(1.5)

    @pytest.mark.parametrize("value", ["-1", "abc", "NaN", "Infinity", "1.0000001"])
    def test_parse_amount_rejects_bad_input(self, value):
        with pytest.raises(InvalidAmountError):
            parse_amount(value)

    def test_format_amount(self):
        assert format_amount(100_000_000) == "100"
        assert format_amount(99_500_000) == "99.5"
        assert format_amount(1) == "0.000001"

    @pytest.mark.parametrize("base_units", [0, 1, 10**6 - 1, 10**6, 10**6 + 1, 123_456_789, 10**30 + 1, 2**256 - 1])
    def test_format_then_parse_is_exact(self, base_units):
        assert parse_amount(format_amount(base_units)) == base_units

    def test_format_native(self):
        assert format_native(1_234_567_890_000_000, symbol="ETH") == "0.001234 ETH"

    def test_truncate_address(self):
        assert truncate_address(RECIPIENT) == "0x888888...888888"
        assert truncate_address("0x1234") == "0x1234"


class TestSlippage:
    """Tests for the slippage floor."""

    def test_half_percent_floor(self):
        assert calculate_min_amount(100_000_000, "0.5") == 99_500_000

    def test_zero_slippage(self):
        assert calculate_min_amount(100_000_000, "0") == 100_000_000

    def test_floor_rounds_down(self):
        assert calculate_min_amount(1, "0.5") == 0
        assert calculate_min_amount(333, "1") == 329

    def test_bps_rounds_half_up(self):
        assert slippage_to_bps("0.005") == 1
        assert slippage_to_bps("0.004") == 0
        assert slippage_to_bps("2.5") == 250

    @pytest.mark.parametrize("slippage", ["0", "0.004", "0.005", "0.5", "99.99", "99.995"])
    @pytest.mark.parametrize("amount", [0, 1, 199, 10**6, 99_500_000, 2**128 + 7])
    def test_floor_stays_within_amount(self, amount, slippage):
        bps = slippage_to_bps(slippage)
        min_amount = calculate_min_amount(amount, slippage)
        assert 0 <= min_amount <= amount
        assert min_amount == amount * (10_000 - bps) // 10_000

    def test_top_of_range_rounds_to_full_tolerance(self):
        assert slippage_to_bps("99.995") == 10_000
        assert calculate_min_amount(10**6, "99.995") == 0
        assert calculate_min_amount(10**6, "99.99") == 100

    @pytest.mark.parametrize("value", ["-0.1", "100", "101"])
    def test_out_of_range(self, value):
        with pytest.raises(InvalidAmountError):
            calculate_min_amount(100, value)


class TestOptions:
    """Tests for type-3 executor options."""

    def test_default_gas_encoding(self):
        options = build_lz_receive_options(200_000)
        assert options.hex() == "00030100110100000000000000000000000000030d40"
        assert len(options) == 22

    def test_round_trip_gas(self):
        assert decode_lz_receive_gas(build_lz_receive_options(350_000)) == 350_000

    def test_with_value(self):
        options = build_lz_receive_options(100_000, value=5)
        assert options[3:5] == (33).to_bytes(2, "big")
        assert len(options) == 38

    @pytest.mark.parametrize("gas", [0, -1, 2**128, True, "200000"])
    def test_invalid_gas(self, gas):
        with pytest.raises(InvalidAmountError):
            build_lz_receive_options(gas)

    def test_decode_rejects_other_payloads(self):
        with pytest.raises(ValueError):
            decode_lz_receive_gas(b"\x00\x01")


class TestAddressToBytes32:
    """Tests for recipient padding."""

    def test_evm_address_left_padded(self):
        encoded = address_to_bytes32(RECIPIENT)
        assert len(encoded) == 32
        assert encoded[:12] == b"\x00" * 12
        assert encoded[12:] == bytes.fromhex("88" * 20)

    def test_full_width_address_unchanged(self):
        raw = "0x" + "ab" * 32
        assert address_to_bytes32(raw) == bytes.fromhex("ab" * 32)

    @pytest.mark.parametrize("value", ["", "0x", "0xzz", "0x" + "11" * 33, None])
    def test_invalid(self, value):
        with pytest.raises(InvalidAmountError):
            address_to_bytes32(value)


class TestBuildTransferRequest:
    """Tests for build_transfer_request."""

    def test_builds_send_param(self, registry):
        destination = registry.lookup("arbitrum", "pyusd")
        request = build_transfer_request(amount="100", destination=destination, recipient=RECIPIENT)

        assert request.dst_eid == 30110
        assert request.amount_ld == 100_000_000
        assert request.min_amount_ld == 99_500_000
        assert request.gas_limit == 200_000
        assert request.compose_msg == b""
        assert request.oft_cmd == b""

    def test_tuple_order(self, registry):
        destination = registry.lookup("sei")
        request = build_transfer_request(
            amount="1", destination=destination, recipient=RECIPIENT, slippage_percent="1", gas_limit=300_000
        )
        dst_eid, to, amount, min_amount, options, compose, cmd = request.as_tuple()
        assert (dst_eid, amount, min_amount) == (30280, 1_000_000, 990_000)
        assert to == address_to_bytes32(RECIPIENT)
        assert decode_lz_receive_gas(options) == 300_000
        assert (compose, cmd) == (b"", b"")

    def test_rejects_zero_amount(self, registry):
        with pytest.raises(InvalidAmountError, match="greater than zero"):
            build_transfer_request(amount="0", destination=registry.lookup("sei"), recipient=RECIPIENT)

    def test_request_is_immutable(self, registry):
        request = build_transfer_request(amount="1", destination=registry.lookup("sei"), recipient=RECIPIENT)
        with pytest.raises(AttributeError):
            request.amount_ld = 5

    def test_request_validates_min_amount(self):
        with pytest.raises(InvalidAmountError):
            TransferRequest(
                dst_eid=1,
                to=b"\x00" * 32,
                amount_ld=10,
                min_amount_ld=11,
                extra_options=build_lz_receive_options(),
            )

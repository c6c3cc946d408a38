"""
Tests for DeliveryTracker and status parsing.
"""

from unittest.mock import patch

import pytest
import requests

from stablebridge.core.errors import StatusUnavailableError
from stablebridge.core.tracking import DeliveryStatus, DeliveryTracker, classify_status, parse_message

TX_HASH = "0x" + "ab" * 32
GUID = "0x" + "cd" * 32


def _message(status="DELIVERED", **overrides):
    message = {
        "guid": GUID,
        "status": {"name": status, "message": "Executor transaction confirmed"},
        "pathway": {
            "srcEid": 30101,
            "dstEid": 30110,
            "sender": {"chain": "ethereum"},
            "receiver": {"chain": "arbitrum"},
        },
        "source": {"tx": {"txHash": TX_HASH, "blockTimestamp": 1700000000, "from": "0x9999"}},
        "destination": {"tx": {"txHash": "0x" + "ef" * 32, "blockTimestamp": 1700000100}},
        "created": "2024-01-01T00:00:00Z",
        "updated": "2024-01-01T00:02:00Z",
    }
    message.update(overrides)
    return message


class TestClassifyStatus:
    """Tests for status classification."""

    def test_known_statuses(self):
        assert classify_status("DELIVERED") is DeliveryStatus.DELIVERED
        assert classify_status("inflight") is DeliveryStatus.INFLIGHT

    def test_unknown_status_passes_through(self):
        assert classify_status("SIMULATION_REVERTED") == "SIMULATION_REVERTED"

    def test_terminal_statuses(self):
        assert DeliveryStatus.DELIVERED.is_terminal
        assert DeliveryStatus.FAILED.is_terminal
        assert not DeliveryStatus.INFLIGHT.is_terminal
        assert not DeliveryStatus.PAYLOAD_STORED.is_terminal


class TestParseMessage:
    """Tests for parse_message."""

    def test_full_record(self):
        record = parse_message(_message())
        assert record.status is DeliveryStatus.DELIVERED
        assert record.src_eid == 30101
        assert record.source_chain == "ethereum"
        assert record.destination_chain == "arbitrum"
        assert record.source_timestamp == 1700000000
        assert record.is_terminal

    def test_pending_destination(self):
        record = parse_message(_message(status="INFLIGHT", destination={}))
        assert record.destination_tx_hash is None
        assert not record.is_terminal

    def test_malformed_record(self):
        with pytest.raises(StatusUnavailableError):
            parse_message({"guid": GUID})


class TestDeliveryTracker:
    """Tests for DeliveryTracker lookups."""

    @pytest.fixture
    def tracker(self):
        return DeliveryTracker("https://scan.example/v1/", timeout=3)

    def test_status_by_tx_hash(self, tracker, make_response):
        with patch("requests.get", return_value=make_response(payload={"data": [_message()]})) as mock_get:
            record = tracker.status(TX_HASH)
        assert record.guid == GUID
        mock_get.assert_called_once_with(f"https://scan.example/v1/messages/tx/{TX_HASH}", timeout=3)

    def test_status_by_guid(self, tracker, make_response):
        with patch("requests.get", return_value=make_response(payload={"data": [_message()]})) as mock_get:
            tracker.status_by_guid(GUID)
        assert mock_get.call_args.args[0].endswith(f"/messages/guid/{GUID}")

    def test_not_found_is_none(self, tracker, make_response):
        with patch("requests.get", return_value=make_response(404, reason="Not Found")):
            assert tracker.status(TX_HASH) is None

    def test_empty_data_is_none(self, tracker, make_response):
        with patch("requests.get", return_value=make_response(payload={"data": []})):
            assert tracker.status(TX_HASH) is None

    def test_server_error(self, tracker, make_response):
        with patch("requests.get", return_value=make_response(500, reason="Server Error")):
            with pytest.raises(StatusUnavailableError) as exc_info:
                tracker.status(TX_HASH)
        assert exc_info.value.stage == "status"

    def test_invalid_json(self, tracker, make_response):
        with patch("requests.get", return_value=make_response(payload=ValueError("bad json"))):
            with pytest.raises(StatusUnavailableError, match="invalid JSON"):
                tracker.status(TX_HASH)

    def test_missing_data_field(self, tracker, make_response):
        with patch("requests.get", return_value=make_response(payload={"messages": []})):
            with pytest.raises(StatusUnavailableError, match="no data"):
                tracker.status(TX_HASH)

    def test_timeout_is_retryable(self, tracker):
        with patch("requests.get", side_effect=requests.Timeout("slow")):
            with pytest.raises(StatusUnavailableError) as exc_info:
                tracker.status(TX_HASH)
        assert exc_info.value.retryable

    def test_unknown_status_is_returned(self, tracker, make_response):
        payload = {"data": [_message(status="UNRESOLVABLE_COMMAND")]}
        with patch("requests.get", return_value=make_response(payload=payload)):
            record = tracker.status(TX_HASH)
        assert record.status == "UNRESOLVABLE_COMMAND"
        assert not record.is_terminal

"""Delivery status lookups against the message scan API."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

import requests

from stablebridge.core.errors import NetworkTimeoutError, StatusUnavailableError
from stablebridge.core.utils import get_logger

LOGGER = get_logger("stablebridge.tracking")


class DeliveryStatus(str, enum.Enum):
    CONFIRMING = "CONFIRMING"
    INFLIGHT = "INFLIGHT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    BLOCKED = "BLOCKED"
    PAYLOAD_STORED = "PAYLOAD_STORED"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.BLOCKED)


def classify_status(name: str) -> Union[DeliveryStatus, str]:
    """Map a status name to ``DeliveryStatus``; unknown names pass through unchanged."""
    try:
        return DeliveryStatus(name.upper())
    except ValueError:
        return name


@dataclass(frozen=True)
class DeliveryRecord:
    guid: str
    status: Union[DeliveryStatus, str]
    status_message: str
    src_eid: Optional[int]
    dst_eid: Optional[int]
    source_tx_hash: Optional[str]
    source_timestamp: Optional[int]
    sender: Optional[str] = None
    destination_tx_hash: Optional[str] = None
    destination_timestamp: Optional[int] = None
    source_chain: Optional[str] = None
    destination_chain: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.status, DeliveryStatus) and self.status.is_terminal


def _optional_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    return int(value)


def parse_message(message: Mapping[str, Any]) -> DeliveryRecord:
    """Build a ``DeliveryRecord`` from one scan API message object."""
    try:
        status = message["status"]
        pathway = message.get("pathway") or {}
        source = message.get("source") or {}
        source_tx = source.get("tx") or {}
        destination = message.get("destination") or {}
        destination_tx = destination.get("tx") or {}
        return DeliveryRecord(
            guid=str(message["guid"]),
            status=classify_status(str(status["name"])),
            status_message=str(status.get("message") or ""),
            src_eid=_optional_int(pathway.get("srcEid")),
            dst_eid=_optional_int(pathway.get("dstEid")),
            source_tx_hash=source_tx.get("txHash"),
            source_timestamp=_optional_int(source_tx.get("blockTimestamp")),
            sender=source_tx.get("from"),
            destination_tx_hash=destination_tx.get("txHash"),
            destination_timestamp=_optional_int(destination_tx.get("blockTimestamp")),
            source_chain=(pathway.get("sender") or {}).get("chain"),
            destination_chain=(pathway.get("receiver") or {}).get("chain"),
            created=message.get("created"),
            updated=message.get("updated"),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise StatusUnavailableError(f"Malformed message record: {exc}", cause=exc) from exc


class DeliveryTracker:
    """Query the scan API for the latest message record.

    ``None`` means no record exists yet (still indexing, or not a bridging
    transaction); that is a normal answer, not an error.
    """

    def __init__(self, base_url: str, *, timeout: float = 15, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session

    def status(self, tx_hash: str) -> Optional[DeliveryRecord]:
        """Look up by source transaction hash."""
        return self._lookup(f"{self.base_url}/messages/tx/{tx_hash}")

    def status_by_guid(self, guid: str) -> Optional[DeliveryRecord]:
        return self._lookup(f"{self.base_url}/messages/guid/{guid}")

    def _lookup(self, url: str) -> Optional[DeliveryRecord]:
        getter = self.session.get if self.session is not None else requests.get
        try:
            response = getter(url, timeout=self.timeout)
        except requests.Timeout as exc:
            timeout = NetworkTimeoutError(f"Status API timed out: {exc}", cause=exc)
            raise StatusUnavailableError(f"Status lookup timed out: {url}", cause=timeout) from exc
        except requests.RequestException as exc:
            raise StatusUnavailableError(f"Status API unreachable: {exc}", cause=exc) from exc

        if response.status_code == 404:
            LOGGER.info("No message indexed yet for %s", url)
            return None
        if not response.ok:
            raise StatusUnavailableError(f"Status API request failed ({response.status_code}): {response.reason}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise StatusUnavailableError("Status API returned invalid JSON", cause=exc) from exc

        messages = payload.get("data") if isinstance(payload, Mapping) else None
        if messages is None:
            raise StatusUnavailableError("Status API response has no data field")
        if not isinstance(messages, list):
            raise StatusUnavailableError("Status API data field is not a list")
        if not messages:
            LOGGER.info("No message indexed yet for %s", url)
            return None

        record = parse_message(messages[0])
        LOGGER.info("Message %s status=%s", record.guid, getattr(record.status, "value", record.status))
        return record


__all__ = ["DeliveryRecord", "DeliveryStatus", "DeliveryTracker", "classify_status", "parse_message"]

"""Core domain logic for stablebridge."""

from .approval import ApprovalManager, ApprovalResult
from .executor import RouterTransferExecutor, Stage, TransferExecutor, TransferOutcome
from .quotes import QuoteResult, QuoteService, RouterApiClient
from .registry import ChainRegistry
from .request import TransferRequest, build_transfer_request
from .routing import MeshRouter, Route, RoutingBackend
from .rpc import ChainClient
from .tracking import DeliveryRecord, DeliveryStatus, DeliveryTracker

__all__ = [
    "ApprovalManager",
    "ApprovalResult",
    "ChainClient",
    "ChainRegistry",
    "DeliveryRecord",
    "DeliveryStatus",
    "DeliveryTracker",
    "MeshRouter",
    "QuoteResult",
    "QuoteService",
    "Route",
    "RouterApiClient",
    "RouterTransferExecutor",
    "RoutingBackend",
    "Stage",
    "TransferExecutor",
    "TransferOutcome",
    "TransferRequest",
    "build_transfer_request",
]

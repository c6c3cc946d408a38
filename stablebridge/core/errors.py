"""Error taxonomy for routing, transfer stages and delivery tracking."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from stablebridge.core.executor import TransferOutcome


class BridgeError(Exception):
    """Base class for every failure raised by the transfer engine.

    ``stage`` names the step that failed (``balance``, ``approval``, ``quote``,
    ``execute``, ``route`` or ``status``). ``outcome`` is attached by the
    executor once at least one stage has completed, so callers can see which
    on-chain effects already happened.
    """

    default_stage: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage or self.default_stage
        self.cause = cause
        self.outcome: Optional["TransferOutcome"] = None

    @property
    def retryable(self) -> bool:
        """True when the root cause was a timeout rather than a definite failure."""
        current: Optional[BaseException] = self
        while current is not None:
            if isinstance(current, NetworkTimeoutError):
                return True
            current = getattr(current, "cause", None) or current.__cause__
        return False

    def __str__(self) -> str:
        # Exception.__str__ keeps KeyError subclasses from quoting the message.
        message = Exception.__str__(self)
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class RpcError(BridgeError):
    """A chain RPC read or write failed.

    ``tx_hash`` is set once a transaction was broadcast; a timed-out
    confirmation may still land on-chain.
    """

    def __init__(self, message: str, *, tx_hash: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash


class NetworkTimeoutError(RpcError):
    """An RPC request or confirmation wait exceeded its timeout."""


class TransactionRevertedError(RpcError):
    """A submitted transaction reverted, or gas estimation predicted a revert."""


class UnknownChainError(BridgeError, KeyError):
    """The chain key is not present in the loaded configuration."""

    default_stage = "route"

    def __init__(self, chain_key: str, supported: Optional[list] = None) -> None:
        message = f"Chain {chain_key!r} not supported"
        if supported:
            message += f". Supported chains: {', '.join(supported)}"
        super().__init__(message)
        self.chain_key = chain_key


class UnsupportedRouteError(BridgeError):
    """No single mesh connects the source and destination chains."""

    default_stage = "route"

    def __init__(self, message: str, *, hint: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.hint = hint


class AmbiguousRouteError(UnsupportedRouteError):
    """Both chains share more than one mesh and no mesh was chosen."""


class InvalidAmountError(BridgeError, ValueError):
    """Malformed or out-of-range amount, slippage or gas input."""


class InsufficientBalanceError(BridgeError):
    default_stage = "balance"

    def __init__(self, balance: int, required: int) -> None:
        super().__init__(f"Insufficient balance: have {balance} base units, need {required}")
        self.balance = balance
        self.required = required


class ApprovalFailedError(BridgeError):
    default_stage = "approval"

    def __init__(self, message: str, *, tx_hash: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash


class QuoteFailedError(BridgeError):
    default_stage = "quote"


class SlippageExceededError(BridgeError):
    default_stage = "quote"

    def __init__(self, expected: int, minimum: int) -> None:
        super().__init__(f"Expected to receive {expected} base units, below slippage floor {minimum}")
        self.expected = expected
        self.minimum = minimum


class ExecutionFailedError(BridgeError):
    default_stage = "execute"

    def __init__(self, message: str, *, tx_hashes: Optional[list] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.tx_hashes = list(tx_hashes or [])


class StatusUnavailableError(BridgeError):
    """The status source was unreachable or returned malformed data."""

    default_stage = "status"


__all__ = [
    "AmbiguousRouteError",
    "ApprovalFailedError",
    "BridgeError",
    "ExecutionFailedError",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "NetworkTimeoutError",
    "QuoteFailedError",
    "RpcError",
    "SlippageExceededError",
    "StatusUnavailableError",
    "TransactionRevertedError",
    "UnknownChainError",
    "UnsupportedRouteError",
]

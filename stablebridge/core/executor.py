"""Staged transfer orchestration: balance, approval, quote, execute."""

from __future__ import annotations

import enum
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from stablebridge.core import oft
from stablebridge.core.approval import ApprovalManager
from stablebridge.core.errors import (
    ApprovalFailedError,
    BridgeError,
    ExecutionFailedError,
    InsufficientBalanceError,
    QuoteFailedError,
    SlippageExceededError,
    UnsupportedRouteError,
)
from stablebridge.core.quotes import QuoteResult, QuoteService, RouterApiClient, RouterQuote
from stablebridge.core.request import TransferRequest
from stablebridge.core.routing import Route
from stablebridge.core.rpc import ChainClient
from stablebridge.core.tokens import balance_of
from stablebridge.core.utils import checksum_address, get_logger

LOGGER = get_logger("stablebridge.executor")

UNCONFIRMED = "unconfirmed"


class Stage(str, enum.Enum):
    BALANCE = "balance"
    APPROVAL = "approval"
    QUOTE = "quote"
    EXECUTE = "execute"


@dataclass(frozen=True)
class StageResult:
    stage: Stage
    status: str
    detail: str = ""
    tx_hash: Optional[str] = None


@dataclass
class TransferOutcome:
    """Ordered stage results of one transfer attempt.

    On failure the executor attaches the partial outcome to the raised error
    (``error.outcome``) so confirmed transactions are never hidden.
    """

    route: Route
    dry_run: bool
    stages: List[StageResult] = field(default_factory=list)
    source_tx_hash: Optional[str] = None
    guid: Optional[str] = None
    quote: Optional[QuoteResult] = None
    router_quote: Optional[RouterQuote] = None

    def record(self, stage: Stage, status: str, detail: str = "", tx_hash: Optional[str] = None) -> None:
        self.stages.append(StageResult(stage=stage, status=status, detail=detail, tx_hash=tx_hash))

    @property
    def confirmed_tx_hashes(self) -> List[str]:
        return [r.tx_hash for r in self.stages if r.tx_hash and r.status != UNCONFIRMED]

    @property
    def unconfirmed_tx_hashes(self) -> List[str]:
        """Broadcast transactions whose confirmation wait timed out."""
        return [r.tx_hash for r in self.stages if r.tx_hash and r.status == UNCONFIRMED]

    @property
    def guid_available(self) -> bool:
        return bool(self.guid) and self.guid != oft.GUID_UNAVAILABLE

    @property
    def completed(self) -> bool:
        return bool(self.stages) and self.stages[-1].stage is Stage.EXECUTE and self.stages[-1].status != UNCONFIRMED


def _record_unconfirmed(outcome: TransferOutcome, stage: Stage, exc: BridgeError) -> Optional[str]:
    """Record a broadcast transaction whose receipt never arrived; return any known hash."""
    tx_hash = getattr(exc, "tx_hash", None)
    if tx_hash and exc.retryable:
        outcome.record(stage, UNCONFIRMED, "confirmation timed out, may still confirm", tx_hash=tx_hash)
        LOGGER.warning("Transaction %s unconfirmed at %s stage; check it before retrying", tx_hash, stage.value)
    return tx_hash


@contextmanager
def _stage(name: Stage) -> Iterator[None]:
    try:
        yield
    except BridgeError as exc:
        if exc.stage is None:
            exc.stage = name.value
        raise


def _fail_with_outcome(exc: BridgeError, outcome: TransferOutcome) -> None:
    exc.outcome = outcome
    confirmed = outcome.confirmed_tx_hashes
    if confirmed:
        LOGGER.warning(
            "Transfer aborted at %s stage; already confirmed on-chain: %s",
            exc.stage,
            ", ".join(confirmed),
        )
    unconfirmed = outcome.unconfirmed_tx_hashes
    if unconfirmed:
        LOGGER.warning("Submitted but unconfirmed: %s", ", ".join(unconfirmed))


def _check_balance(client: ChainClient, route: Route, sender: str, amount: int, outcome: TransferOutcome) -> int:
    with _stage(Stage.BALANCE):
        balance = balance_of(client, route.source.token_address, sender)
    if balance < amount:
        raise InsufficientBalanceError(balance, amount)
    LOGGER.info("Balance %s covers amount %s", balance, amount)
    outcome.record(Stage.BALANCE, "checked", f"balance={balance}")
    return balance


class TransferExecutor:
    """Drive one protocol-routed transfer through its stages in order.

    Each stage fails fast with its own error type and nothing is retried;
    effects of earlier stages (an approval) stay on-chain.
    """

    def __init__(
        self,
        client: ChainClient,
        *,
        approvals: Optional[ApprovalManager] = None,
        quotes: Optional[QuoteService] = None,
    ) -> None:
        self.client = client
        self.approvals = approvals or ApprovalManager(client)
        self.quotes = quotes or QuoteService(client)

    def execute(self, request: TransferRequest, route: Route, *, dry_run: bool = False) -> TransferOutcome:
        if not route.same_mesh:
            raise UnsupportedRouteError(f"Direct transfers need a single mesh: {route.describe()}")
        if request.dst_eid != route.destination.eid:
            raise UnsupportedRouteError(
                f"Request targets eid {request.dst_eid} but {route.destination.chain_key} is eid {route.destination.eid}"
            )

        outcome = TransferOutcome(route=route, dry_run=dry_run)
        sender = self.client.address
        LOGGER.info("Starting transfer %s amount=%s min=%s dry_run=%s", route.describe(), request.amount_ld, request.min_amount_ld, dry_run)
        try:
            _check_balance(self.client, route, sender, request.amount_ld, outcome)
            self._approve(route, sender, request, outcome)
            quote = self._quote(route, request, outcome)
            if dry_run:
                outcome.record(Stage.EXECUTE, "simulated", "dry run, nothing submitted")
                LOGGER.info("Dry run complete; no transaction submitted")
                return outcome
            self._send(route, sender, request, quote, outcome)
        except BridgeError as exc:
            _fail_with_outcome(exc, outcome)
            raise
        return outcome

    def _approve(self, route: Route, sender: str, request: TransferRequest, outcome: TransferOutcome) -> None:
        try:
            with _stage(Stage.APPROVAL):
                result = self.approvals.ensure_approved(route.source, sender, request.amount_ld)
        except BridgeError as exc:
            _record_unconfirmed(outcome, Stage.APPROVAL, exc)
            raise
        if result.approved:
            outcome.record(Stage.APPROVAL, "performed", "max allowance granted", tx_hash=result.tx_hash)
        else:
            outcome.record(Stage.APPROVAL, "skipped", "approval not needed")

    def _quote(self, route: Route, request: TransferRequest, outcome: TransferOutcome) -> QuoteResult:
        with _stage(Stage.QUOTE):
            quote = self.quotes.quote(route.source, request)
        if not quote.within_limits(request.amount_ld):
            raise QuoteFailedError(
                f"Amount {request.amount_ld} outside transfer limits "
                f"[{quote.limit.min_amount_ld}, {quote.limit.max_amount_ld}]"
            )
        if not quote.meets_floor(request.min_amount_ld):
            raise SlippageExceededError(quote.amount_received, request.min_amount_ld)
        outcome.quote = quote
        outcome.record(
            Stage.QUOTE,
            "obtained",
            f"nativeFee={quote.messaging_fee.native_fee} received={quote.amount_received}",
        )
        return quote

    def _send(
        self,
        route: Route,
        sender: str,
        request: TransferRequest,
        quote: QuoteResult,
        outcome: TransferOutcome,
    ) -> None:
        native_fee = quote.messaging_fee.native_fee
        try:
            native_balance = self.client.native_balance(sender)
        except BridgeError as exc:
            LOGGER.warning("Could not read native balance before send: %s", exc)
        else:
            if native_balance < native_fee:
                LOGGER.warning(
                    "Native balance %s below messaging fee %s %s; send will likely fail",
                    native_balance,
                    native_fee,
                    route.source.native_currency.symbol,
                )

        try:
            result = oft.send(self.client, route.source.oft_address, request, quote.messaging_fee, sender)
        except BridgeError as exc:
            tx_hash = _record_unconfirmed(outcome, Stage.EXECUTE, exc)
            if tx_hash and exc.retryable:
                outcome.source_tx_hash = tx_hash
            raise ExecutionFailedError(
                f"Send on {route.source.name} failed: {exc}",
                cause=exc,
                tx_hashes=[tx_hash] if tx_hash else None,
            ) from exc

        guid = oft.extract_guid(result.receipt, emitter=route.source.oft_address)
        if guid == oft.GUID_UNAVAILABLE:
            LOGGER.warning("No OFTSent event in %s; track delivery by transaction hash", result.tx_hash)
        outcome.source_tx_hash = result.tx_hash
        outcome.guid = guid
        outcome.record(Stage.EXECUTE, "executed", f"guid={guid}", tx_hash=result.tx_hash)
        LOGGER.info("Transfer sent tx=%s guid=%s", result.tx_hash, guid)


class RouterTransferExecutor:
    """Run a router-backed transfer: balance check, router quote, then each step.

    The router's plan already contains any approval step, so approvals are
    recorded from the plan rather than checked locally.
    """

    def __init__(self, client: ChainClient, router_api: RouterApiClient) -> None:
        self.client = client
        self.router_api = router_api

    def execute(
        self,
        route: Route,
        *,
        amount_ld: int,
        min_amount_ld: int,
        recipient: str,
        dry_run: bool = False,
    ) -> TransferOutcome:
        outcome = TransferOutcome(route=route, dry_run=dry_run)
        sender = self.client.address
        LOGGER.info("Starting router transfer %s amount=%s min=%s dry_run=%s", route.describe(), amount_ld, min_amount_ld, dry_run)
        try:
            _check_balance(self.client, route, sender, amount_ld, outcome)
            with _stage(Stage.QUOTE):
                quote = self.router_api.fetch_quote(
                    src_token=route.source.token_address,
                    dst_token=route.destination.token_address,
                    src_address=sender,
                    dst_address=checksum_address(recipient, "recipient"),
                    src_chain_key=route.source.chain_key,
                    dst_chain_key=route.destination.chain_key,
                    src_amount=amount_ld,
                    dst_amount_min=min_amount_ld,
                )
            if quote.dst_amount < min_amount_ld:
                raise SlippageExceededError(quote.dst_amount, min_amount_ld)
            outcome.router_quote = quote
            outcome.record(Stage.QUOTE, "obtained", f"steps={len(quote.steps)} received={quote.dst_amount}")

            if dry_run:
                planned = ", ".join(step.type for step in quote.steps)
                outcome.record(Stage.EXECUTE, "simulated", f"would run: {planned}")
                LOGGER.info("Dry run complete; steps that would run: %s", planned)
                return outcome

            self._run_steps(quote, outcome)
        except BridgeError as exc:
            _fail_with_outcome(exc, outcome)
            raise
        return outcome

    def _run_steps(self, quote: RouterQuote, outcome: TransferOutcome) -> None:
        total = len(quote.steps)
        bridge_receipt = None
        last = None
        for index, step in enumerate(quote.steps, start=1):
            is_approval = step.type == "approve"
            LOGGER.info("Step %s/%s: %s", index, total, step.type)
            try:
                result = self.client.send_raw(step.to, step.data, value=step.value)
            except BridgeError as exc:
                message = f"Step {index}/{total} ({step.type}) failed: {exc}"
                tx_hash = _record_unconfirmed(outcome, Stage.APPROVAL if is_approval else Stage.EXECUTE, exc)
                if is_approval:
                    raise ApprovalFailedError(message, cause=exc, tx_hash=tx_hash) from exc
                if step.type == "bridge" and tx_hash and exc.retryable:
                    outcome.source_tx_hash = tx_hash
                hashes = outcome.confirmed_tx_hashes + ([tx_hash] if tx_hash else [])
                raise ExecutionFailedError(message, cause=exc, tx_hashes=hashes) from exc

            if is_approval:
                outcome.record(Stage.APPROVAL, "performed", step.type, tx_hash=result.tx_hash)
            else:
                outcome.record(Stage.EXECUTE, "executed", step.type, tx_hash=result.tx_hash)
            if step.type == "bridge":
                outcome.source_tx_hash = result.tx_hash
                bridge_receipt = result.receipt
            last = result

        if outcome.source_tx_hash is None and last is not None:
            outcome.source_tx_hash = last.tx_hash
            bridge_receipt = last.receipt
        outcome.guid = oft.extract_guid(bridge_receipt or {})
        LOGGER.info("Router transfer sent tx=%s guid=%s", outcome.source_tx_hash, outcome.guid)


__all__ = [
    "RouterTransferExecutor",
    "Stage",
    "StageResult",
    "TransferExecutor",
    "TransferOutcome",
]

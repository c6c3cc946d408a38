"""CLI entrypoint for cross-chain stablecoin transfers."""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from eth_account import Account
from eth_account.signers.local import LocalAccount

from stablebridge.config import BridgeConfig, ChainDescriptor, ConfigError, Environment, load_config
from stablebridge.core.errors import BridgeError, InvalidAmountError, UnsupportedRouteError
from stablebridge.core.executor import RouterTransferExecutor, TransferExecutor, TransferOutcome
from stablebridge.core.quotes import QuoteService, RouterApiClient
from stablebridge.core.registry import ChainRegistry
from stablebridge.core.request import build_transfer_request
from stablebridge.core.routing import MeshRouter, Route, RoutingBackend
from stablebridge.core.rpc import ChainClient
from stablebridge.core.tokens import snapshot_balances
from stablebridge.core.tracking import DeliveryTracker
from stablebridge.core.utils import (
    calculate_min_amount,
    checksum_address,
    format_amount,
    format_native,
    get_logger,
    parse_amount,
    truncate_address,
)

LOGGER = get_logger("stablebridge.cli")

RULE = "─" * 60


def _load_account(private_key: str) -> LocalAccount:
    try:
        return Account.from_key(private_key)
    except (TypeError, ValueError) as exc:
        raise ConfigError("PRIVATE_KEY is not a valid private key") from exc


class BridgeCli:
    """Wires configuration, signer and chain clients for one CLI invocation."""

    def __init__(self, config: BridgeConfig, *, private_key: Optional[str] = None) -> None:
        self.config = config
        self.registry = ChainRegistry.from_config(config)
        self.account: Optional[LocalAccount] = _load_account(private_key) if private_key else None
        self._clients: Dict[ChainDescriptor, ChainClient] = {}

    def require_account(self) -> LocalAccount:
        if self.account is None:
            raise ConfigError("PRIVATE_KEY environment variable is required for this command")
        return self.account

    def client_for(self, descriptor: ChainDescriptor) -> ChainClient:
        client = self._clients.get(descriptor)
        if client is None:
            client = ChainClient.for_chain(
                descriptor,
                account=self.account,
                rpc_timeout=self.config.defaults.rpc_timeout,
                receipt_timeout=self.config.defaults.receipt_timeout,
            )
            self._clients[descriptor] = client
        return client

    def recipient(self, explicit: Optional[str]) -> str:
        if explicit:
            return checksum_address(explicit, "--to")
        if self.account is None:
            raise ConfigError("Either --to or the PRIVATE_KEY environment variable is required")
        return self.account.address

    def resolve(self, source: str, destination: str, mesh: Optional[str], backend: RoutingBackend) -> Route:
        return MeshRouter(self.registry, backend).resolve(source, destination, mesh=mesh)


def _cmd_chains(cli: BridgeCli, args: argparse.Namespace) -> None:
    if args.format == "json":
        payload = {
            mesh: [
                {**asdict(d), "kind": d.kind.value, "requires_approval": d.requires_approval}
                for d in cli.registry.descriptors_for_mesh(mesh)
            ]
            for mesh in cli.registry.mesh_ids
        }
        print(json.dumps(payload, indent=2, default=str))
        return

    for mesh in cli.registry.mesh_ids:
        print(f"\n{mesh} chains")
        print(RULE)
        print(f"{'Chain':<14} {'EID':<8} {'Type':<12} {'Operation':<12} Bridging contract")
        for d in cli.registry.descriptors_for_mesh(mesh):
            print(f"{d.name:<14} {d.eid:<8} {d.kind.value:<12} {d.kind.operation:<12} {d.oft_address}")
    bridges = cli.registry.bridge_chains()
    print(f"\nBridge chains (in more than one mesh): {', '.join(bridges) or 'none'}\n")


def _cmd_balance(cli: BridgeCli, args: argparse.Namespace) -> None:
    owner = checksum_address(args.address, "--address") if args.address else cli.require_account().address
    keys = args.chains or cli.registry.chain_keys()
    descriptors: List[ChainDescriptor] = []
    for key in keys:
        cli.registry.lookup(key)
        meshes = cli.registry.ordered_meshes(cli.registry.meshes_containing(key))
        descriptors.extend(cli.registry.lookup(key, mesh) for mesh in meshes)

    results = snapshot_balances(descriptors, owner, cli.client_for)
    print(f"\nBalances for {owner}")
    print(RULE)
    for descriptor in descriptors:
        value = results[descriptor]
        shown = f"error: {value}" if isinstance(value, BridgeError) else format_amount(value)
        print(f"{descriptor.name:<14} {descriptor.mesh:<8} {shown}")
    print()


def _cmd_route(cli: BridgeCli, args: argparse.Namespace) -> None:
    legs = MeshRouter(cli.registry).plan(args.source, args.destination)
    print()
    for index, leg in enumerate(legs, start=1):
        print(f"Leg {index}: {leg.describe()}")
    if len(legs) > 1:
        print("Run each leg as its own transfer; start the next once the previous one is DELIVERED.")
    print()


def _cmd_quote(cli: BridgeCli, args: argparse.Namespace) -> None:
    route = cli.resolve(args.source, args.destination, args.mesh, RoutingBackend.PROTOCOL)
    request = build_transfer_request(
        amount=args.amount,
        destination=route.destination,
        recipient=cli.recipient(args.to),
        slippage_percent=args.slippage,
        gas_limit=args.gas,
        decimals=route.source.decimals,
    )
    quote = QuoteService(cli.client_for(route.source)).quote(route.source, request)
    native = route.source.native_currency

    print(f"\nQuote {route.describe()}")
    print(RULE)
    print(f"Messaging fee:   {format_native(quote.messaging_fee.native_fee, native.decimals, native.symbol)}")
    for fee in quote.fee_details:
        print(f"Protocol fee:    {format_amount(fee.fee_amount_ld)} ({fee.description})")
    print(f"Amount sent:     {format_amount(quote.receipt.amount_sent_ld)}")
    print(f"Amount received: {format_amount(quote.receipt.amount_received_ld)}")
    print(f"Min received:    {format_amount(request.min_amount_ld)} ({args.slippage}% slippage)")
    print(f"Limits:          {format_amount(quote.limit.min_amount_ld)} - {format_amount(quote.limit.max_amount_ld)}")
    print(f"Destination gas: {request.gas_limit}\n")


def _print_outcome(outcome: TransferOutcome, explorer: Optional[str]) -> None:
    print("\nStages")
    print(RULE)
    for result in outcome.stages:
        suffix = f" tx={result.tx_hash}" if result.tx_hash else ""
        print(f"{result.stage.value:<10} {result.status:<10} {result.detail}{suffix}")
    if outcome.dry_run:
        print("\nDry run complete. Remove --dry-run to execute.\n")
        return
    print(f"\nTX hash:  {outcome.source_tx_hash}")
    if explorer and outcome.source_tx_hash:
        print(f"Explorer: {explorer.rstrip('/')}/tx/{outcome.source_tx_hash}")
    print(f"GUID:     {outcome.guid if outcome.guid_available else 'unavailable'}")
    print("Status:   pending, check with `stablebridge status <tx>`\n")


def _cmd_send(cli: BridgeCli, args: argparse.Namespace) -> None:
    account = cli.require_account()
    route = cli.resolve(args.source, args.destination, args.mesh, RoutingBackend.PROTOCOL)
    recipient = cli.recipient(args.to)
    request = build_transfer_request(
        amount=args.amount,
        destination=route.destination,
        recipient=recipient,
        slippage_percent=args.slippage,
        gas_limit=args.gas,
        decimals=route.source.decimals,
    )
    LOGGER.info(
        "Sending %s from %s to %s (%s)",
        args.amount,
        truncate_address(account.address),
        truncate_address(recipient),
        route.describe(),
    )
    outcome = TransferExecutor(cli.client_for(route.source)).execute(request, route, dry_run=args.dry_run)
    _print_outcome(outcome, route.source.block_explorer)


def _cmd_transfer(cli: BridgeCli, args: argparse.Namespace) -> None:
    cli.require_account()
    route = cli.resolve(args.source, args.destination, args.mesh, RoutingBackend.ROUTER)
    amount_ld = parse_amount(args.amount, route.source.decimals)
    if amount_ld == 0:
        raise InvalidAmountError("amount must be greater than zero")
    min_amount_ld = calculate_min_amount(amount_ld, args.slippage)
    router_api = RouterApiClient(cli.config.api_urls.router_quote, timeout=cli.config.defaults.api_timeout)
    executor = RouterTransferExecutor(cli.client_for(route.source), router_api)
    try:
        outcome = executor.execute(
            route,
            amount_ld=amount_ld,
            min_amount_ld=min_amount_ld,
            recipient=cli.recipient(args.to),
            dry_run=args.dry_run,
        )
    except BridgeError as exc:
        if exc.stage == "quote" and not route.same_mesh:
            try:
                legs = MeshRouter(cli.registry).plan(route.source.chain_key, route.destination.chain_key)
            except UnsupportedRouteError:
                legs = []
            if len(legs) == 2:
                bridge = legs[0].destination.chain_key
                print(f"Tip: try {route.source.chain_key} -> {bridge}, then {bridge} -> {route.destination.chain_key}")
        raise
    _print_outcome(outcome, route.source.block_explorer)


def _cmd_status(cli: BridgeCli, args: argparse.Namespace) -> None:
    tracker = DeliveryTracker(cli.config.api_urls.status, timeout=cli.config.defaults.api_timeout)
    record = tracker.status_by_guid(args.identifier) if args.guid else tracker.status(args.identifier)
    if record is None:
        print("\nNo message found for this identifier.")
        print("It may not be a cross-chain transfer or is still being indexed.\n")
        return

    status = getattr(record.status, "value", record.status)
    print(f"\nStatus:       {status}")
    print(f"Message:      {record.status_message}")
    print(f"GUID:         {record.guid}")
    print(RULE)
    print(f"Source:       {record.source_chain or f'EID {record.src_eid}'} tx={record.source_tx_hash}")
    print(f"Destination:  {record.destination_chain or f'EID {record.dst_eid}'} tx={record.destination_tx_hash or '(pending)'}\n")


def _add_transfer_args(parser: argparse.ArgumentParser, *, gas: bool) -> None:
    parser.add_argument("source", help="Source chain key")
    parser.add_argument("destination", help="Destination chain key")
    parser.add_argument("amount", help="Token amount, e.g. 100 or 12.5")
    parser.add_argument("--to", help="Recipient on the destination chain (defaults to the sender)")
    parser.add_argument("--slippage", default=None, help="Slippage tolerance in percent")
    parser.add_argument("--mesh", help="Force a mesh when both chains share several")
    if gas:
        parser.add_argument("--gas", type=int, default=None, help="Destination lzReceive gas limit")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="stablebridge", description="Cross-chain stablecoin transfers")
    parser.add_argument("--config", type=Path, help="Config file (defaults to config/<environment>.json)")
    parser.add_argument(
        "--environment",
        choices=[env.value for env in Environment],
        default=Environment.MAINNET.value,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    chains = sub.add_parser("chains", help="List configured chains by mesh")
    chains.add_argument("--format", choices=["table", "json"], default="table")
    chains.set_defaults(handler=_cmd_chains)

    balance = sub.add_parser("balance", help="Token balances across chains")
    balance.add_argument("chains", nargs="*", help="Chain keys (defaults to all)")
    balance.add_argument("-a", "--address", help="Address to check (defaults to the signer)")
    balance.set_defaults(handler=_cmd_balance)

    route = sub.add_parser("route", help="Show the legs needed between two chains")
    route.add_argument("source")
    route.add_argument("destination")
    route.set_defaults(handler=_cmd_route)

    quote = sub.add_parser("quote", help="Fee quote for a direct transfer")
    _add_transfer_args(quote, gas=True)
    quote.set_defaults(handler=_cmd_quote)

    send = sub.add_parser("send", help="Direct transfer through the bridging contract")
    _add_transfer_args(send, gas=True)
    send.add_argument("--dry-run", action="store_true", help="Run every check but submit nothing")
    send.set_defaults(handler=_cmd_send)

    transfer = sub.add_parser("transfer", help="Transfer through the external router")
    _add_transfer_args(transfer, gas=False)
    transfer.add_argument("--dry-run", action="store_true", help="Fetch the plan but submit nothing")
    transfer.set_defaults(handler=_cmd_transfer)

    status = sub.add_parser("status", help="Delivery status of a transfer")
    status.add_argument("identifier", help="Source transaction hash (or GUID with --guid)")
    status.add_argument("--guid", action="store_true", help="Treat the identifier as a message GUID")
    status.set_defaults(handler=_cmd_status)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    args = _parse_args(argv)

    private_key = (os.getenv("PRIVATE_KEY") or "").strip() or None

    try:
        config = load_config(args.config, environment=Environment(args.environment), rpc_overrides=os.environ)
        if getattr(args, "slippage", "unset") is None:
            args.slippage = str(config.defaults.slippage_percent)
        if getattr(args, "gas", "unset") is None:
            args.gas = config.defaults.gas_limit
        cli = BridgeCli(config, private_key=private_key)
        args.handler(cli, args)
    except (BridgeError, ConfigError) as exc:
        print(f"\n❌ Error: {exc}")
        hint = getattr(exc, "hint", None)
        if hint:
            print(f"   Hint: {hint}")
        outcome = getattr(exc, "outcome", None)
        if outcome is not None and outcome.confirmed_tx_hashes:
            print(f"   Already confirmed on-chain: {', '.join(outcome.confirmed_tx_hashes)}")
        if outcome is not None and outcome.unconfirmed_tx_hashes:
            print(f"   Submitted but unconfirmed: {', '.join(outcome.unconfirmed_tx_hashes)}")
        if getattr(exc, "retryable", False):
            print("   The failure was a timeout; check any submitted transaction before retrying.")
        sys.exit(1)
    except Exception as exc:
        LOGGER.debug("Unexpected failure", exc_info=True)
        print(f"\n❌ Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()

"""Mesh routing: pick the descriptor pair that connects two chains."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Optional

from stablebridge.config import ChainDescriptor
from stablebridge.core.errors import AmbiguousRouteError, UnsupportedRouteError
from stablebridge.core.registry import ChainRegistry
from stablebridge.core.utils import get_logger

LOGGER = get_logger("stablebridge.routing")


class RoutingBackend(str, enum.Enum):
    """Who carries the transfer across chains.

    ``protocol`` sends directly through the bridging contract, so both
    endpoints must sit in the same mesh. ``router`` hands the transfer to an
    external router that can cross meshes on its own.
    """

    PROTOCOL = "protocol"
    ROUTER = "router"


@dataclass(frozen=True)
class Route:
    source: ChainDescriptor
    destination: ChainDescriptor

    @property
    def same_mesh(self) -> bool:
        return self.source.mesh == self.destination.mesh

    @property
    def mesh(self) -> Optional[str]:
        return self.source.mesh if self.same_mesh else None

    def describe(self) -> str:
        if self.same_mesh:
            return f"{self.source.chain_key} -> {self.destination.chain_key} via {self.source.mesh}"
        return (
            f"{self.source.chain_key} ({self.source.mesh}) -> "
            f"{self.destination.chain_key} ({self.destination.mesh}) via router"
        )


class MeshRouter:
    """Resolve (source, destination) chain keys into a ``Route``."""

    def __init__(self, registry: ChainRegistry, backend: RoutingBackend = RoutingBackend.PROTOCOL) -> None:
        self.registry = registry
        self.backend = RoutingBackend(backend)

    def resolve(self, source_key: str, dest_key: str, *, mesh: Optional[str] = None) -> Route:
        source_key = source_key.lower()
        dest_key = dest_key.lower()
        # Raises UnknownChainError for keys absent from every mesh.
        self.registry.lookup(source_key)
        self.registry.lookup(dest_key)

        if source_key == dest_key:
            raise UnsupportedRouteError(f"Source and destination are both {source_key}")

        if mesh is not None:
            return self._within_mesh(source_key, dest_key, mesh)

        if self.backend is RoutingBackend.ROUTER:
            route = self._resolve_for_router(source_key, dest_key)
        else:
            route = self._resolve_for_protocol(source_key, dest_key)
        LOGGER.info("Resolved route %s", route.describe())
        return route

    def _within_mesh(self, source_key: str, dest_key: str, mesh: str) -> Route:
        source = self.registry.find(source_key, mesh)
        destination = self.registry.find(dest_key, mesh)
        if source is None or destination is None:
            missing = source_key if source is None else dest_key
            raise UnsupportedRouteError(
                f"{missing} is not a member of mesh {mesh!r}",
                hint=self._hop_hint(source_key, dest_key),
            )
        return Route(source=source, destination=destination)

    def _resolve_for_protocol(self, source_key: str, dest_key: str) -> Route:
        dest_meshes = self.registry.meshes_containing(dest_key)
        source_meshes = self.registry.meshes_containing(source_key)

        if len(dest_meshes) == 1:
            (mesh,) = dest_meshes
            if mesh not in source_meshes:
                raise UnsupportedRouteError(
                    f"No single mesh connects {source_key} and {dest_key}",
                    hint=self._hop_hint(source_key, dest_key),
                )
            return self._within_mesh(source_key, dest_key, mesh)

        common = self.registry.ordered_meshes(dest_meshes & source_meshes)
        if not common:
            raise UnsupportedRouteError(
                f"No single mesh connects {source_key} and {dest_key}",
                hint=self._hop_hint(source_key, dest_key),
            )
        if len(common) > 1:
            raise AmbiguousRouteError(
                f"{source_key} and {dest_key} are both members of meshes {', '.join(common)}",
                hint=f"choose one explicitly, e.g. mesh={common[0]!r}",
            )
        return self._within_mesh(source_key, dest_key, common[0])

    def _resolve_for_router(self, source_key: str, dest_key: str) -> Route:
        common = self.registry.ordered_meshes(
            self.registry.meshes_containing(dest_key) & self.registry.meshes_containing(source_key)
        )
        if common:
            return self._within_mesh(source_key, dest_key, common[0])
        # The router crosses meshes itself; each endpoint keeps its own descriptor.
        return Route(source=self.registry.lookup(source_key), destination=self.registry.lookup(dest_key))

    def plan(self, source_key: str, dest_key: str) -> List[Route]:
        """Return the single-mesh legs needed to move from source to destination.

        One leg when a mesh connects both chains directly, otherwise two legs
        through a bridge chain. Each leg is an independent transfer; the second
        should only start once the first has been delivered.
        """
        source_key = source_key.lower()
        dest_key = dest_key.lower()
        self.registry.lookup(source_key)
        self.registry.lookup(dest_key)

        source_meshes = self.registry.meshes_containing(source_key)
        dest_meshes = self.registry.meshes_containing(dest_key)
        common = self.registry.ordered_meshes(source_meshes & dest_meshes)
        if common:
            return [self._within_mesh(source_key, dest_key, common[0])]

        for bridge in self.registry.bridge_chains():
            bridge_meshes = self.registry.meshes_containing(bridge)
            first = self.registry.ordered_meshes(source_meshes & bridge_meshes)
            second = self.registry.ordered_meshes(dest_meshes & bridge_meshes)
            if first and second:
                return [
                    self._within_mesh(source_key, bridge, first[0]),
                    self._within_mesh(bridge, dest_key, second[0]),
                ]
        raise UnsupportedRouteError(f"No bridge chain links {source_key} and {dest_key}")

    def _hop_hint(self, source_key: str, dest_key: str) -> Optional[str]:
        try:
            legs = self.plan(source_key, dest_key)
        except UnsupportedRouteError:
            return None
        if len(legs) != 2:
            return None
        bridge = legs[0].destination.chain_key
        return (
            f"transfer through bridge chain {bridge}: "
            f"{source_key} -> {bridge}, then {bridge} -> {dest_key}"
        )


__all__ = ["MeshRouter", "Route", "RoutingBackend"]

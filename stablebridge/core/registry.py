"""In-memory chain table with mesh-membership queries."""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Mapping, Optional

from stablebridge.config import BridgeConfig, ChainDescriptor, Environment
from stablebridge.core.errors import UnknownChainError


class ChainRegistry:
    """Read-only view over the loaded chain descriptors.

    A chain that belongs to two meshes has one descriptor per mesh. Mesh order
    follows the configuration file and is used as precedence wherever a single
    descriptor per chain key is needed.
    """

    def __init__(
        self,
        meshes: Mapping[str, Mapping[str, ChainDescriptor]],
        *,
        environment: Environment = Environment.MAINNET,
    ) -> None:
        self.environment = environment
        self._meshes: Dict[str, Dict[str, ChainDescriptor]] = {
            mesh: dict(chains) for mesh, chains in meshes.items()
        }

    @classmethod
    def from_config(cls, config: BridgeConfig) -> "ChainRegistry":
        return cls(config.meshes, environment=config.environment)

    @property
    def mesh_ids(self) -> List[str]:
        return list(self._meshes)

    def chain_keys(self) -> List[str]:
        keys: Dict[str, None] = {}
        for chains in self._meshes.values():
            keys.update(dict.fromkeys(chains))
        return list(keys)

    def lookup(self, chain_key: str, mesh: Optional[str] = None) -> ChainDescriptor:
        """Return the descriptor for ``chain_key``.

        Without ``mesh`` the first mesh (in configuration order) containing the
        chain wins.
        """
        key = chain_key.lower()
        if mesh is not None:
            descriptor = self._meshes.get(mesh, {}).get(key)
            if descriptor is None:
                raise UnknownChainError(f"{key} (mesh {mesh})", sorted(self._meshes.get(mesh, {})))
            return descriptor
        for chains in self._meshes.values():
            if key in chains:
                return chains[key]
        raise UnknownChainError(key, sorted(self.chain_keys()))

    def find(self, chain_key: str, mesh: str) -> Optional[ChainDescriptor]:
        return self._meshes.get(mesh, {}).get(chain_key.lower())

    def descriptors_for_mesh(self, mesh: str) -> List[ChainDescriptor]:
        if mesh not in self._meshes:
            raise KeyError(f"Unknown mesh {mesh!r}; configured meshes: {', '.join(self._meshes)}")
        return list(self._meshes[mesh].values())

    def meshes_containing(self, chain_key: str) -> FrozenSet[str]:
        key = chain_key.lower()
        return frozenset(mesh for mesh, chains in self._meshes.items() if key in chains)

    def ordered_meshes(self, meshes: FrozenSet[str]) -> List[str]:
        """Sort a set of mesh ids by configuration precedence."""
        return [mesh for mesh in self._meshes if mesh in meshes]

    def bridge_chains(self) -> List[str]:
        """Chain keys present in more than one mesh."""
        return [key for key in self.chain_keys() if len(self.meshes_containing(key)) > 1]

    def all_descriptors(self) -> List[ChainDescriptor]:
        return [descriptor for chains in self._meshes.values() for descriptor in chains.values()]


__all__ = ["ChainRegistry"]

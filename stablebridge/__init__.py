"""Cross-chain stablecoin transfers over OFT bridging meshes."""

from importlib import metadata


def __getattr__(name: str) -> str:
    """Expose the package version via ``stablebridge.__version__``."""
    if name == "__version__":
        try:
            return metadata.version("stablebridge")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]

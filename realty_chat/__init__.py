"""Message routing and fallback orchestration for the real-estate chat widget."""

from .__version__ import __version__

__all__ = ["__version__"]

"""Samsung PIT parsing, firmware package handling and Heimdall flash orchestration."""

from .__version__ import __version__

__all__ = ["__version__"]

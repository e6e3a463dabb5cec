"""HTTP service that performs requests with browser fingerprints through curl-impersonate wrapper scripts."""

__version__ = "1.0.0"
__all__ = ["__version__"]
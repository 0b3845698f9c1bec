"""Check out a depot subtree with its change history and hand it to a packager."""

__version__ = "0.1.0"

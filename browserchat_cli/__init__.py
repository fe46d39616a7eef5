"""browserchat command-line helpers: configuration and logging setup."""

__version__ = "0.1.0"

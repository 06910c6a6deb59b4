"""squadkit: install and re-sync agent-team configuration."""

__version__ = "0.1.0"

"""ChronoForge -- organization-specific enterprise DevOps framework generator."""

__version__ = "1.0.0"

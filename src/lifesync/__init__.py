"""lifesync - Resumable data sync and token lifecycle for a personal data service."""

__version__ = "0.1.0"

"""DataLayer Cop - enforce dataLayer conventions before events reach the tag manager."""

__version__ = "1.0.0"

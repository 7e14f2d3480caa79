"""Package popularity statistics: ingestion worker for the DUB registry."""

__version__ = "0.1.0"

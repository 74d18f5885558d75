"""DebtDesk: case management service for B2B debt collection."""

__version__ = "0.1.0"

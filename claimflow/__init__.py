"""ClaimFlow - expense claims and approvals API."""

__version__ = "1.0.0"

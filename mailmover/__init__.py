"""Batched, quota-aware mail item transfers over Microsoft Graph."""

__version__ = "1.0.0"

"""Catalog, pricing and entitlement core for the digital-asset marketplace."""

__version__ = "0.1.0"

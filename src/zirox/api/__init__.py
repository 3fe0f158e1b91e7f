"""HTTP surface for price, claim and trade-commission operations."""

from zirox.api.app import create_app

__all__ = ["create_app"]

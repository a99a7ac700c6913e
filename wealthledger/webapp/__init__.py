"""Flask JSON API over the valuation, snapshot, goal and tax services."""

from wealthledger.webapp.routes import create_app

__all__ = ["create_app"]

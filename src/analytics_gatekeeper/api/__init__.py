"""HTTP surface: token management routes and app factory."""

from analytics_gatekeeper.api.app import create_app

__all__ = ["create_app"]

"""Upstream sports data providers."""
from .base import SportsDataProvider
from .espn import ESPNProvider

__all__ = ["SportsDataProvider", "ESPNProvider"]

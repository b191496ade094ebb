"""Last.fm API client module."""

from .cached import CachedLastfmClient
from .client import LASTFM_API_URL, PERIODS, LastfmClient

__all__ = [
    "LASTFM_API_URL",
    "PERIODS",
    "CachedLastfmClient",
    "LastfmClient",
]

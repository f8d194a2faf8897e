"""dashcache - result cache in front of the dashboard's third-party data providers."""

from dashcache.config import VERSION

__version__ = VERSION

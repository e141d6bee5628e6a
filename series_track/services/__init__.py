"""Services for series-track."""

from .provider import MetadataProvider, create_provider
from .tmdb import TMDBProvider
from .tvdb import TVDBProvider
from .sync import SyncService
from .catalog import CatalogService

__all__ = [
    "MetadataProvider",
    "create_provider",
    "TMDBProvider",
    "TVDBProvider",
    "SyncService",
    "CatalogService",
]

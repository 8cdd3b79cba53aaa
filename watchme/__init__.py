"""
WatchMe - movie watch list

A Flask-based service for keeping a list of movies to see: tags,
ratings, notes, TMDb metadata and release date reminders.
"""

__version__ = "1.0.0"

from .domain import Movie, Tag, PosterSize
from .api_client import (
    MovieDataClient,
    APIError,
    AuthError,
    QuotaError,
    NotFoundError,
    TransientError,
    APIErrorType
)

__all__ = [
    "Movie",
    "Tag",
    "PosterSize",
    "MovieDataClient",
    "APIError",
    "AuthError",
    "QuotaError",
    "NotFoundError",
    "TransientError",
    "APIErrorType",
]

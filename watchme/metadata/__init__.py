"""
Movie metadata from TMDb: title search, movie details and poster URLs.
"""

from .tmdb import search_movies_core, get_movie_details_core, poster_url

__all__ = [
    'search_movies_core',
    'get_movie_details_core',
    'poster_url',
]

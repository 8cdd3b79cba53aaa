"""
Domain objects for WatchMe.

A Movie holds what the user knows about a film they want to see: title,
rating, release date, a free-text note and a list of tags. The higher the
rating, the more the user wants to see it.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

# Sentinel for a movie that has no TMDb id
NO_API_ID = -1

MIN_RATING = 0
MAX_RATING = 10


class PosterSize(Enum):
    """Supported poster sizes, with the TMDb image width each maps to."""
    MID = ("mid", "w500")
    THUMB = ("thumb", "w92")

    def __init__(self, size: str, tmdb_width: str):
        self.size = size
        self.tmdb_width = tmdb_width

    @classmethod
    def from_size(cls, size: str) -> "PosterSize":
        for member in cls:
            if member.size == size:
                return member
        raise ValueError(f"Unknown poster size: {size!r}")


def parse_tag_names(text: Optional[str]) -> List[str]:
    """
    Split comma separated tag input into clean tag names.

    Surrounding whitespace is stripped so multi-word tags work, empty
    pieces are dropped and input order is kept.

    >>> parse_tag_names(" action, sci-fi ,, space opera")
    ['action', 'sci-fi', 'space opera']
    """
    if not text:
        return []
    return [piece.strip() for piece in text.split(",") if piece.strip()]


class Tag:
    """A user defined label attached to one or more movies."""

    def __init__(self, name: str, id: int = 0):
        self._name = name.strip()
        self.id = id

    @property
    def name(self) -> str:
        return self._name

    def __eq__(self, other):
        if self is other:
            return True
        if other is None or type(self) is not type(other):
            return False
        return self._name == other._name

    def __hash__(self):
        return hash((type(self), self._name))

    def __str__(self):
        return self._name

    def __repr__(self):
        return f"<Tag {self._name!r} ({self.id})>"


class Movie:
    """
    A movie on the watch list.

    The release date is always a calendar date; passing a datetime drops
    the time of day. Tags keep insertion order and may contain duplicates,
    the store is what keeps attachments unique.
    """

    def __init__(
        self,
        title: str,
        release_date: Optional[date] = None,
        rating: int = 0,
        note: str = "",
    ):
        self._title = title
        self.note = note
        self.rating = rating
        self.release_date = release_date if release_date is not None else date.today()
        self.id = 0
        self.api_id = NO_API_ID
        self.tags: List[Tag] = []
        self.posters: Dict[PosterSize, str] = {}

    @property
    def title(self) -> str:
        return self._title

    @property
    def rating(self) -> int:
        return self._rating

    @rating.setter
    def rating(self, value: int):
        value = int(value)
        if not MIN_RATING <= value <= MAX_RATING:
            raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {value}")
        self._rating = value

    @property
    def release_date(self) -> date:
        return self._release_date

    @release_date.setter
    def release_date(self, value: date):
        if isinstance(value, datetime):
            value = value.date()
        self._release_date = value

    def add_tag(self, tag: Tag):
        self.tags.append(tag)

    def add_tags(self, tags: Iterable[Tag]):
        self.tags.extend(tags)

    def remove_tag(self, tag: Tag) -> bool:
        """Remove the first occurrence of `tag`. Returns True if one was removed."""
        try:
            self.tags.remove(tag)
        except ValueError:
            return False
        return True

    def remove_tags(self, tags: Iterable[Tag]) -> bool:
        removed = False
        for tag in list(tags):
            removed = self.remove_tag(tag) or removed
        return removed

    def has_api_id(self) -> bool:
        return self.api_id != NO_API_ID

    def set_poster_url(self, url: str, size: PosterSize):
        self.posters[size] = url

    def get_poster_url(self, size: PosterSize) -> Optional[str]:
        return self.posters.get(size)

    def set_posters(self, posters: Dict[PosterSize, str]):
        self.posters.clear()
        self.posters.update(posters)

    def __eq__(self, other):
        if self is other:
            return True
        if other is None or type(self) is not type(other):
            return False
        return self._title == other._title

    def __hash__(self):
        return hash((type(self), self._title))

    def __str__(self):
        return self._title

    def __repr__(self):
        return f"<Movie {self._title!r} ({self.id})>"

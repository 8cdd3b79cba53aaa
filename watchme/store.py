"""
Watch list persistence.

WatchlistStore does every read and write against the movies, tags and
has_tag tables. A tag only exists while it is attached to at least one
movie: every path that removes an attachment prunes the tags it left
orphaned before committing.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from watchme.domain import Movie, PosterSize, MIN_RATING, MAX_RATING
from watchme.logging_config import get_logger
from watchme.metrics import track_movie_added, track_movie_deleted, track_tags_pruned
from watchme.models import db, MovieRecord, TagRecord, HasTag

logger = get_logger(__name__)

ORDERINGS = {
    'title': (MovieRecord.title,),
    'rating': (MovieRecord.rating.desc(),),
    'release_date': (MovieRecord.release_date,),
    'created_at': (MovieRecord.created_at,),
}

UPDATABLE_FIELDS = {'title', 'note', 'rating', 'release_date', 'api_id', 'posters'}


class StoreError(Exception):
    """Base exception for watch list store errors."""


class MovieNotFoundError(StoreError):
    def __init__(self, movie_id: int):
        self.movie_id = movie_id
        super().__init__(f"No movie with id {movie_id}")


class TagNotFoundError(StoreError):
    def __init__(self, tag_id: int):
        self.tag_id = tag_id
        super().__init__(f"No tag with id {tag_id}")


class DuplicateMovieError(StoreError):
    def __init__(self, title: str):
        self.title = title
        super().__init__(f"A movie titled '{title}' is already on the watch list")


class DuplicateTagError(StoreError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"A tag named '{name}' already exists")


class TagWithoutMovieError(StoreError):
    def __init__(self):
        super().__init__("A tag can't exist without being attached to a movie")


def _check_rating(rating) -> int:
    rating = int(rating)
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}")
    return rating


def _clean_title(title: str) -> str:
    title = (title or '').strip()
    if not title:
        raise ValueError("Title must not be empty")
    return title


def _clean_tag_name(name: str) -> str:
    name = (name or '').strip()
    if not name:
        raise ValueError("Tag name must not be empty")
    return name


def _clean_tag_names(names: Iterable[str]) -> List[str]:
    wanted = []
    for name in names:
        name = _clean_tag_name(name)
        if name not in wanted:
            wanted.append(name)
    return wanted


def _poster_map(posters: Dict) -> Dict[str, str]:
    """Normalize a poster mapping to size name -> URL."""
    result = {}
    for size, url in (posters or {}).items():
        if isinstance(size, PosterSize):
            size = size.size
        else:
            size = PosterSize.from_size(size).size
        if url:
            result[size] = url
    return result


class WatchlistStore:
    """
    CRUD over movies and tags.

    Methods return ORM records; call ``to_domain()`` on a MovieRecord for
    the domain Movie.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # --- movies -------------------------------------------------------

    def add_movie(self, movie: Movie) -> MovieRecord:
        """
        Insert a movie together with its tags.

        Raises:
            DuplicateMovieError: a movie with the same title is stored
            ValueError: the title or a tag name is blank
        """
        title = _clean_title(movie.title)
        tag_names = [_clean_tag_name(tag.name) for tag in movie.tags]
        if self._find_by_title(title) is not None:
            raise DuplicateMovieError(title)

        record = MovieRecord(
            title=title,
            note=movie.note or '',
            rating=_check_rating(movie.rating),
            release_date=movie.release_date,
            api_id=movie.api_id,
            posters=_poster_map(movie.posters),
        )
        try:
            self.session.add(record)
            self.session.flush()
            for tag, name in zip(movie.tags, tag_names):
                tag_record, _ = self._attach(record, name)
                tag.id = tag_record.id
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateMovieError(title)
        except Exception:
            self.session.rollback()
            raise

        movie.id = record.id
        track_movie_added()
        logger.info("movie_added", movie_id=record.id, title=title, tag_count=len(record.attachments))
        return record

    def get_movie(self, movie_id: int) -> MovieRecord:
        record = self.session.get(MovieRecord, movie_id)
        if record is None:
            raise MovieNotFoundError(movie_id)
        return record

    def list_movies(self, tag: Optional[str] = None, order_by: str = 'release_date') -> List[MovieRecord]:
        """
        List stored movies, optionally only those carrying the tag named `tag`.

        Raises:
            ValueError: unknown ordering
        """
        if order_by not in ORDERINGS:
            raise ValueError(f"Cannot order by '{order_by}'. Use one of: {', '.join(sorted(ORDERINGS))}")

        query = self.session.query(MovieRecord)
        if tag:
            query = (
                query.join(HasTag, HasTag.movie_id == MovieRecord.id)
                .join(TagRecord, TagRecord.id == HasTag.tag_id)
                .filter(TagRecord.name == tag.strip())
            )
        return query.order_by(*ORDERINGS[order_by], MovieRecord.id).all()

    def update_movie(self, movie_id: int, **fields) -> MovieRecord:
        """
        Update stored fields of a movie.

        Raises:
            MovieNotFoundError: no such movie
            DuplicateMovieError: the new title is taken
            ValueError: unknown field or invalid value
        """
        record = self.get_movie(movie_id)
        values = self._validated_values(record, fields)

        for key, value in values.items():
            setattr(record, key, value)
        self.session.commit()
        logger.info("movie_updated", movie_id=movie_id, fields=sorted(fields))
        return record

    def edit_movie(self, movie_id: int, fields: dict,
                   tags: Optional[Iterable[str]] = None) -> Tuple[MovieRecord, List[str], List[str]]:
        """
        Update fields and, when `tags` is given, replace the tag set in one commit.

        Nothing is stored if any part fails.

        Returns:
            (record, attached names, detached names)

        Raises:
            MovieNotFoundError: no such movie
            DuplicateMovieError: the new title is taken
            ValueError: unknown field, invalid value or blank tag name
        """
        record = self.get_movie(movie_id)
        values = self._validated_values(record, fields)
        wanted = _clean_tag_names(tags) if tags is not None else None

        attached, detached = [], []
        try:
            for key, value in values.items():
                setattr(record, key, value)
            if wanted is not None:
                attached, detached = self._apply_tags(record, wanted)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateMovieError(values.get('title', record.title))
        except Exception:
            self.session.rollback()
            raise

        logger.info("movie_updated", movie_id=movie_id, fields=sorted(fields),
                    attached=attached, detached=detached)
        return record, attached, detached

    def delete_movie(self, movie_id: int) -> int:
        """
        Delete a movie, detach its tags and prune the ones left orphaned.

        Returns:
            Number of deleted movies (0 or 1)
        """
        record = self.session.get(MovieRecord, movie_id)
        if record is None:
            return 0

        tag_ids = [a.tag_id for a in record.attachments]
        self.session.delete(record)
        self.session.flush()
        pruned = self._prune(tag_ids)
        self.session.commit()

        track_movie_deleted()
        logger.info("movie_deleted", movie_id=movie_id, pruned_tags=pruned)
        return 1

    # --- attachments --------------------------------------------------

    def attach_tag(self, movie_id: int, name: str) -> Tuple[TagRecord, bool]:
        """
        Attach the tag called `name` to a movie, creating the tag if needed.

        Returns:
            (tag, attached) where attached is False if it already was
        """
        record = self.get_movie(movie_id)
        tag, attached = self._attach(record, name)
        self.session.commit()
        if attached:
            logger.info("tag_attached", movie_id=movie_id, tag=tag.name)
        return tag, attached

    def detach_tag(self, movie_id: int, tag_id: int) -> bool:
        """Detach a tag from a movie. Returns True if it was attached."""
        record = self.get_movie(movie_id)
        link = next((a for a in record.attachments if a.tag_id == tag_id), None)
        if link is None:
            return False

        record.attachments.remove(link)
        self.session.delete(link)
        self.session.flush()
        pruned = self._prune([tag_id])
        self.session.commit()
        logger.info("tag_detached", movie_id=movie_id, tag_id=tag_id, pruned=bool(pruned))
        return True

    def set_tags(self, movie_id: int, names: Iterable[str]) -> Tuple[List[str], List[str]]:
        """
        Make the movie's tags match `names`.

        Tags already attached keep their position, new ones are appended.

        Returns:
            (attached names, detached names)
        """
        record = self.get_movie(movie_id)
        wanted = _clean_tag_names(names)

        try:
            attached, detached = self._apply_tags(record, wanted)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        if attached or detached:
            logger.info("tags_updated", movie_id=movie_id, attached=attached, detached=detached)
        return attached, detached

    def tags_for_movie(self, movie_id: int) -> List[TagRecord]:
        """Tags attached to a movie, in attach order."""
        return [a.tag for a in self.get_movie(movie_id).attachments]

    # --- tags ---------------------------------------------------------

    def add_tag(self, name: str):
        """Tags are only created by attaching them to a movie."""
        raise TagWithoutMovieError()

    def list_tags(self) -> List[TagRecord]:
        return self.session.query(TagRecord).order_by(TagRecord.name).all()

    def get_tag(self, tag_id: int) -> TagRecord:
        tag = self.session.get(TagRecord, tag_id)
        if tag is None:
            raise TagNotFoundError(tag_id)
        return tag

    def rename_tag(self, tag_id: int, name: str) -> TagRecord:
        tag = self.get_tag(tag_id)
        name = _clean_tag_name(name)
        existing = self.session.query(TagRecord).filter_by(name=name).first()
        if existing is not None and existing.id != tag.id:
            raise DuplicateTagError(name)
        tag.name = name
        self.session.commit()
        return tag

    def delete_tag(self, tag_id: int) -> int:
        """Detach a tag from every movie and delete it. Returns rows deleted."""
        tag = self.session.get(TagRecord, tag_id)
        if tag is None:
            return 0
        self.session.delete(tag)
        self.session.commit()
        logger.info("tag_deleted", tag_id=tag_id)
        return 1

    def prune_orphan_tags(self) -> int:
        """Delete every tag that no movie carries. Returns the count."""
        pruned = self._prune(None)
        self.session.commit()
        return pruned

    # --- internals ----------------------------------------------------

    def _validated_values(self, record: MovieRecord, fields: dict) -> dict:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        values = {}
        if 'title' in fields:
            title = _clean_title(fields['title'])
            existing = self._find_by_title(title)
            if existing is not None and existing.id != record.id:
                raise DuplicateMovieError(title)
            values['title'] = title
        if 'note' in fields:
            values['note'] = fields['note'] or ''
        if 'rating' in fields:
            values['rating'] = _check_rating(fields['rating'])
        if 'release_date' in fields:
            release_date = fields['release_date']
            if isinstance(release_date, datetime):
                release_date = release_date.date()
            if not isinstance(release_date, date):
                raise ValueError("release_date must be a date")
            values['release_date'] = release_date
        if 'api_id' in fields:
            values['api_id'] = int(fields['api_id'])
        if 'posters' in fields:
            values['posters'] = _poster_map(fields['posters'])
        return values

    def _apply_tags(self, record: MovieRecord, wanted: List[str]) -> Tuple[List[str], List[str]]:
        """Sync attachments with `wanted` and prune orphans, without committing."""
        current = [a.tag.name for a in record.attachments]
        attached = [name for name in wanted if name not in current]
        removed_links = [a for a in record.attachments if a.tag.name not in wanted]
        detached = [link.tag.name for link in removed_links]
        removed_ids = [link.tag_id for link in removed_links]

        for link in removed_links:
            record.attachments.remove(link)
            self.session.delete(link)
        for name in attached:
            self._attach(record, name)
        self.session.flush()
        self._prune(removed_ids)
        return attached, detached

    def _find_by_title(self, title: str) -> Optional[MovieRecord]:
        return self.session.query(MovieRecord).filter_by(title=title).first()

    def _attach(self, record: MovieRecord, name: str) -> Tuple[TagRecord, bool]:
        name = _clean_tag_name(name)
        tag = self.session.query(TagRecord).filter_by(name=name).first()
        if tag is None:
            tag = TagRecord(name=name)
            self.session.add(tag)
            self.session.flush()
        elif any(a.tag is tag for a in record.attachments):
            return tag, False

        position = max((a.position for a in record.attachments), default=-1) + 1
        record.attachments.append(HasTag(tag=tag, position=position))
        self.session.flush()
        return tag, True

    def _prune(self, tag_ids: Optional[List[int]]) -> int:
        """Delete orphaned tags among `tag_ids` (all tags when None)."""
        if tag_ids is not None and not tag_ids:
            return 0

        query = self.session.query(TagRecord.id).filter(~TagRecord.attachments.any())
        if tag_ids is not None:
            query = query.filter(TagRecord.id.in_(tag_ids))
        orphan_ids = [tag_id for (tag_id,) in query.all()]
        if not orphan_ids:
            return 0

        self.session.query(TagRecord).filter(TagRecord.id.in_(orphan_ids)).delete(synchronize_session='fetch')

        track_tags_pruned(len(orphan_ids))
        logger.debug("tags_pruned", tag_ids=orphan_ids)
        return len(orphan_ids)

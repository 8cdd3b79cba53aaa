"""
Database models for the WatchMe watch list.

This module defines SQLAlchemy models for:
- MovieRecord: A movie the user wants to watch
- TagRecord: A label, which only lives while attached to a movie
- HasTag: The movie <-> tag join table, ordered by attach position
- Notification: A delivered release date reminder
"""

from flask_sqlalchemy import SQLAlchemy
from datetime import date, datetime

from watchme.domain import Movie, Tag, PosterSize, NO_API_ID

db = SQLAlchemy()


class HasTag(db.Model):
    """Attachment of a tag to a movie."""
    __tablename__ = 'has_tag'

    movie_id = db.Column(db.Integer, db.ForeignKey('movies.id', ondelete='CASCADE'), primary_key=True)
    tag_id = db.Column(db.Integer, db.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True)
    # Attach order within the movie
    position = db.Column(db.Integer, nullable=False, default=0)

    tag = db.relationship('TagRecord', back_populates='attachments')
    movie = db.relationship('MovieRecord', back_populates='attachments')

    def __repr__(self):
        return f'<HasTag movie={self.movie_id} tag={self.tag_id}>'


class MovieRecord(db.Model):
    """
    Stored movie. Titles are unique across the watch list.
    """
    __tablename__ = 'movies'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False, unique=True)
    note = db.Column(db.Text, nullable=False, default='')
    rating = db.Column(db.Integer, nullable=False, default=0)
    release_date = db.Column(db.Date, nullable=False, default=date.today)
    api_id = db.Column(db.Integer, nullable=False, default=NO_API_ID)
    # Poster size name -> URL
    posters = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    attachments = db.relationship(
        'HasTag',
        back_populates='movie',
        order_by='HasTag.position',
        cascade='all, delete-orphan',
    )

    def to_domain(self) -> Movie:
        """Build a domain Movie, tags in attach order."""
        movie = Movie(self.title, self.release_date, self.rating, self.note or '')
        movie.id = self.id
        movie.api_id = self.api_id
        movie.set_posters({
            PosterSize.from_size(size): url
            for size, url in (self.posters or {}).items()
        })
        movie.add_tags(Tag(a.tag.name, a.tag.id) for a in self.attachments)
        return movie

    def to_dict(self):
        """Convert the movie to a dictionary for JSON serialization."""
        return {
            'id': self.id,
            'title': self.title,
            'note': self.note,
            'rating': self.rating,
            'release_date': self.release_date.isoformat() if self.release_date else None,
            'api_id': self.api_id if self.api_id != NO_API_ID else None,
            'posters': dict(self.posters or {}),
            'tags': [{'id': a.tag.id, 'name': a.tag.name} for a in self.attachments],
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<MovieRecord {self.title} ({self.id})>'


class TagRecord(db.Model):
    __tablename__ = 'tags'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)

    attachments = db.relationship('HasTag', back_populates='tag', cascade='all, delete-orphan')

    def to_domain(self) -> Tag:
        return Tag(self.name, self.id)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'movie_count': len(self.attachments),
        }

    def __repr__(self):
        return f'<TagRecord {self.name} ({self.id})>'


class Notification(db.Model):
    """A release date reminder that has fired."""
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    # Kept after the movie is gone, hence no foreign key
    movie_id = db.Column(db.Integer, nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    text = db.Column(db.String(512), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'movie_id': self.movie_id,
            'title': self.title,
            'text': self.text,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Notification {self.text!r}>'

"""
Request schemas for the WatchMe API.

Pydantic models validate JSON bodies before anything reaches the store.
Tags may be sent either as a comma separated string ("action, sci-fi")
or as a list of names; both end up as a clean list of names.
"""

from datetime import date
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from watchme.domain import MIN_RATING, MAX_RATING, NO_API_ID, parse_tag_names


def _tag_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return parse_tag_names(value)
    if isinstance(value, (list, tuple)):
        names = []
        for item in value:
            if not isinstance(item, str):
                raise ValueError("Tag names must be strings")
            names.extend(parse_tag_names(item))
        return names
    raise ValueError("Tags must be a comma separated string or a list of names")


class MovieCreate(BaseModel):
    """Body of POST /api/movies."""
    title: str = Field(..., description="Movie title, unique on the watch list")
    note: str = Field("", description="Free text note")
    rating: int = Field(0, ge=MIN_RATING, le=MAX_RATING, description="How much the user wants to see it")
    release_date: Optional[date] = Field(None, description="ISO date, defaults to today")
    api_id: Optional[int] = Field(None, description="TMDb movie id")
    tags: Union[str, List[str], None] = Field(default_factory=list, description="Tag names")

    model_config = ConfigDict(
        extra='forbid',
        json_schema_extra={
            "example": {
                "title": "Dune: Part Two",
                "note": "See it in IMAX",
                "rating": 9,
                "release_date": "2024-03-01",
                "api_id": 693134,
                "tags": "sci-fi, space opera",
            }
        }
    )

    @field_validator('title')
    @classmethod
    def title_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Title must not be empty")
        return v

    @field_validator('note', mode='before')
    @classmethod
    def none_note_is_empty(cls, v):
        return v if v is not None else ""

    @field_validator('tags', mode='after')
    @classmethod
    def split_tags(cls, v):
        return _tag_list(v)


class MovieUpdate(BaseModel):
    """Body of PATCH /api/movies/<id>. Only the fields present are changed."""
    title: Optional[str] = None
    note: Optional[str] = None
    rating: Optional[int] = Field(None, ge=MIN_RATING, le=MAX_RATING)
    release_date: Optional[date] = None
    api_id: Optional[int] = None
    tags: Union[str, List[str], None] = None

    model_config = ConfigDict(extra='forbid')

    @field_validator('title')
    @classmethod
    def title_not_blank(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title must not be empty")
        return v

    @field_validator('tags', mode='after')
    @classmethod
    def split_tags(cls, v):
        if v is None:
            return None
        return _tag_list(v)

    def store_fields(self) -> dict:
        """Fields the client sent, minus tags, ready for WatchlistStore.update_movie."""
        fields = self.model_dump(exclude_unset=True, exclude={'tags'})
        if fields.get('note') is None and 'note' in fields:
            fields['note'] = ''
        if 'api_id' in fields and fields['api_id'] is None:
            fields['api_id'] = NO_API_ID
        for key in ('title', 'rating', 'release_date'):
            if key in fields and fields[key] is None:
                fields.pop(key)
        return fields


class TagName(BaseModel):
    """Body of POST /api/movies/<id>/tags and PATCH /api/tags/<id>."""
    name: str

    model_config = ConfigDict(extra='forbid')

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Tag name must not be empty")
        return v

from flask import Blueprint, request, jsonify, Response, current_app
from pydantic import ValidationError

from watchme.api_client import APIError
from watchme.domain import Movie, PosterSize, Tag, NO_API_ID
from watchme.logging_config import get_logger
from watchme.logging_context import bind_context
from watchme.metadata import search_movies_core, get_movie_details_core
from watchme.metrics import get_metrics
from watchme.models import Notification
from watchme.schemas import MovieCreate, MovieUpdate, TagName
from watchme.store import (
    WatchlistStore, StoreError, MovieNotFoundError, TagNotFoundError,
    DuplicateMovieError, DuplicateTagError, TagWithoutMovieError,
)

bp = Blueprint("api", __name__)

logger = get_logger(__name__)

DETAILS_ERROR = "An error occurred while fetching movie details"


@bp.url_value_preprocessor
def _bind_ids(endpoint, values):
    if values and "movie_id" in values:
        bind_context(movie_id=values["movie_id"])


def _error(message, status_code, **extra):
    body = {"status": "error", "error": message}
    body.update(extra)
    return jsonify(body), status_code


def _notifier():
    return current_app.extensions.get('release_notifier')


class _BadBody(Exception):
    pass


def _json_body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise _BadBody()
    return body


@bp.errorhandler(_BadBody)
def handle_bad_body(e):
    return _error("Request body must be a JSON object.", 400)


@bp.errorhandler(ValidationError)
def handle_validation_error(e):
    details = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in e.errors()
    ]
    return _error("Invalid request", 400, details=details)


@bp.errorhandler(StoreError)
def handle_store_error(e):
    if isinstance(e, (MovieNotFoundError, TagNotFoundError)):
        return _error(str(e), 404)
    if isinstance(e, (DuplicateMovieError, DuplicateTagError)):
        return _error(str(e), 409)
    if isinstance(e, TagWithoutMovieError):
        return _error(str(e), 405)
    return _error(str(e), 400)


@bp.errorhandler(ValueError)
def handle_value_error(e):
    return _error(str(e), 400)


# --- movies -----------------------------------------------------------

@bp.route("/movies", methods=["GET"])
def list_movies():
    """
    GET /api/movies?tag=sci-fi&order_by=rating
    Watch list, optionally narrowed to one tag. Ordered by release date
    unless `order_by` names another column.
    """
    tag = request.args.get("tag", "").strip() or None
    order_by = request.args.get("order_by", "release_date").strip()
    records = WatchlistStore().list_movies(tag=tag, order_by=order_by)
    return jsonify({
        "status": "success",
        "count": len(records),
        "movies": [r.to_dict() for r in records],
    })


@bp.route("/movies", methods=["POST"])
def create_movie():
    """
    POST /api/movies
    Add a movie to the watch list and schedule its release reminder.

    Expected JSON body:
    {
        "title": "Dune: Part Two",
        "note": "See it in IMAX",
        "rating": 9,
        "release_date": "2024-03-01",
        "api_id": 693134,
        "tags": "sci-fi, space opera"
    }
    """
    data = MovieCreate.model_validate(_json_body())

    movie = Movie(data.title, data.release_date, data.rating, data.note)
    if data.api_id is not None:
        movie.api_id = data.api_id
    movie.add_tags(Tag(name) for name in data.tags)

    record = WatchlistStore().add_movie(movie)

    notifier = _notifier()
    if notifier is not None:
        notifier.schedule(record)

    return jsonify({"status": "success", "movie": record.to_dict()}), 201


@bp.route("/movies/<int:movie_id>", methods=["GET"])
def get_movie(movie_id):
    record = WatchlistStore().get_movie(movie_id)
    return jsonify({"status": "success", "movie": record.to_dict()})


@bp.route("/movies/<int:movie_id>", methods=["PATCH"])
def update_movie(movie_id):
    """
    PATCH /api/movies/<id>
    Change any of title, note, rating, release_date, api_id and tags.
    Sending `tags` replaces the movie's tag set.
    """
    data = MovieUpdate.model_validate(_json_body())
    store = WatchlistStore()

    fields = data.store_fields()
    record, attached, detached = store.edit_movie(movie_id, fields, tags=data.tags)

    notifier = _notifier()
    if notifier is not None and 'release_date' in fields:
        notifier.schedule(record)

    return jsonify({
        "status": "success",
        "movie": record.to_dict(),
        "tags_attached": attached,
        "tags_detached": detached,
    })


@bp.route("/movies/<int:movie_id>", methods=["DELETE"])
def delete_movie(movie_id):
    if not WatchlistStore().delete_movie(movie_id):
        raise MovieNotFoundError(movie_id)

    notifier = _notifier()
    if notifier is not None:
        notifier.cancel(movie_id)

    return jsonify({"status": "success", "deleted": movie_id})


@bp.route("/movies/<int:movie_id>/tags", methods=["GET"])
def movie_tags(movie_id):
    tags = WatchlistStore().tags_for_movie(movie_id)
    return jsonify({"status": "success", "tags": [{"id": t.id, "name": t.name} for t in tags]})


@bp.route("/movies/<int:movie_id>/tags", methods=["POST"])
def attach_tag(movie_id):
    data = TagName.model_validate(_json_body())
    tag, attached = WatchlistStore().attach_tag(movie_id, data.name)
    return jsonify({
        "status": "success",
        "tag": {"id": tag.id, "name": tag.name},
        "attached": attached,
    }), 201 if attached else 200


@bp.route("/movies/<int:movie_id>/tags/<int:tag_id>", methods=["DELETE"])
def detach_tag(movie_id, tag_id):
    if not WatchlistStore().detach_tag(movie_id, tag_id):
        return _error(f"Tag {tag_id} is not attached to movie {movie_id}", 404)
    return jsonify({"status": "success", "detached": tag_id})


# --- tags -------------------------------------------------------------

@bp.route("/tags", methods=["GET"])
def list_tags():
    tags = WatchlistStore().list_tags()
    return jsonify({"status": "success", "count": len(tags), "tags": [t.to_dict() for t in tags]})


@bp.route("/tags", methods=["POST"])
def create_tag():
    # Tags are created by attaching them to a movie
    body = request.get_json(silent=True)
    name = body.get("name", "") if isinstance(body, dict) else ""
    WatchlistStore().add_tag(name)


@bp.route("/tags/<int:tag_id>", methods=["GET"])
def get_tag(tag_id):
    tag = WatchlistStore().get_tag(tag_id)
    return jsonify({"status": "success", "tag": tag.to_dict()})


@bp.route("/tags/<int:tag_id>", methods=["PATCH"])
def rename_tag(tag_id):
    data = TagName.model_validate(_json_body())
    tag = WatchlistStore().rename_tag(tag_id, data.name)
    return jsonify({"status": "success", "tag": tag.to_dict()})


@bp.route("/tags/<int:tag_id>", methods=["DELETE"])
def delete_tag(tag_id):
    if not WatchlistStore().delete_tag(tag_id):
        raise TagNotFoundError(tag_id)
    return jsonify({"status": "success", "deleted": tag_id})


# --- TMDb -------------------------------------------------------------

@bp.route("/search", methods=["GET"])
def search():
    """
    GET /api/search?query=dune
    Title auto-complete. Queries of three characters or fewer come back
    with status "too_short" and no results.
    """
    query = request.args.get("query", "")
    result = search_movies_core(query)
    return jsonify(result)


@bp.route("/movies/<int:movie_id>/details", methods=["GET"])
def movie_details(movie_id):
    """
    GET /api/movies/<id>/details
    TMDb details for a movie that has a TMDb id. Poster URLs the movie
    is missing are filled in from the response.
    """
    store = WatchlistStore()
    record = store.get_movie(movie_id)
    if record.api_id == NO_API_ID:
        return _error("Movie has no TMDb id.", 404)

    details = get_movie_details_core(record.api_id)
    if details.get("status") != "success":
        logger.warning(
            "movie_details_failed",
            movie_id=movie_id,
            api_id=record.api_id,
            details_status=details.get("status"),
        )
        return _error(DETAILS_ERROR, 502)

    fetched = details.get("posters") or {}
    posters = dict(record.posters or {})
    missing = {size: url for size, url in fetched.items() if url and not posters.get(size)}
    if missing:
        posters.update(missing)
        record = store.update_movie(movie_id, posters=posters)

    return jsonify({"status": "success", "movie": record.to_dict(), "details": details})


@bp.route("/movies/<int:movie_id>/poster", methods=["GET"])
def movie_poster(movie_id):
    """
    GET /api/movies/<id>/poster?size=thumb
    Poster image bytes, served from the poster cache. `size` is "mid"
    (default) or "thumb".
    """
    size = PosterSize.from_size(request.args.get("size", PosterSize.MID.size))
    record = WatchlistStore().get_movie(movie_id)
    url = (record.posters or {}).get(size.size)
    if not url:
        return _error("Movie has no poster of that size.", 404)

    try:
        content, mimetype = current_app.extensions['poster_cache'].fetch(url)
    except APIError as e:
        logger.warning("poster_fetch_failed", movie_id=movie_id, error=e.message)
        return _error("An error occurred while fetching the poster", 502)

    return Response(content, mimetype=mimetype)


# --- notifications & metrics ------------------------------------------

@bp.route("/notifications", methods=["GET"])
def list_notifications():
    notifications = Notification.query.order_by(
        Notification.created_at.desc(), Notification.id.desc()
    ).all()
    return jsonify({
        "status": "success",
        "count": len(notifications),
        "notifications": [n.to_dict() for n in notifications],
    })


@bp.route("/metrics", methods=["GET"])
def metrics():
    """Prometheus scrape endpoint."""
    data, content_type = get_metrics()
    return Response(data, content_type=content_type)

"""
Release date reminders.

Every movie on the watch list gets a one-shot job that fires at midnight
on its release date. The job records a Notification row and logs a
``movie_released`` event. Jobs live in memory, so they are rebuilt from
the database when the app starts.
"""

from datetime import date, datetime, time
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from watchme.logging_config import get_logger
from watchme.metrics import track_notification_delivered
from watchme.models import db, MovieRecord, Notification

logger = get_logger(__name__)

NOTIFICATION_TITLE = "Movie released"


def notification_text(title: str) -> str:
    return f"{title} is released!"


class ReleaseNotifier:
    """Schedules, cancels and delivers release date reminders."""

    def __init__(self, app=None, scheduler: Optional[BackgroundScheduler] = None):
        self.scheduler = scheduler if scheduler is not None else BackgroundScheduler()
        self.app = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app, start: bool = True):
        """Attach to a Flask app, optionally starting the scheduler thread."""
        self.app = app
        app.extensions['release_notifier'] = self
        if start and not self.scheduler.running:
            self.scheduler.start()
            logger.info("notification_scheduler_started")

    @staticmethod
    def job_id(movie_id: int) -> str:
        return f"release-{movie_id}"

    def schedule(self, movie) -> Optional[datetime]:
        """
        (Re)schedule the reminder for `movie` (a domain Movie or MovieRecord).

        Returns:
            When the reminder will fire, or None for a past release date
        """
        if movie.release_date < date.today():
            self.cancel(movie.id)
            logger.debug("notification_not_scheduled", movie_id=movie.id, reason="released")
            return None

        # Released today: fire right away
        run_at = max(datetime.combine(movie.release_date, time.min), datetime.now())
        # replace_existing only applies once the scheduler is running
        try:
            self.scheduler.remove_job(self.job_id(movie.id))
        except JobLookupError:
            pass
        self.scheduler.add_job(
            self.deliver,
            trigger=DateTrigger(run_date=run_at),
            args=[movie.id],
            id=self.job_id(movie.id),
            name=f"Release of {movie.title}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info("notification_scheduled", movie_id=movie.id, run_at=run_at.isoformat())
        return run_at

    def cancel(self, movie_id: int) -> bool:
        """Drop a pending reminder. Returns True if there was one."""
        try:
            self.scheduler.remove_job(self.job_id(movie_id))
        except JobLookupError:
            return False
        logger.info("notification_cancelled", movie_id=movie_id)
        return True

    def scheduled_at(self, movie_id: int) -> Optional[datetime]:
        job = self.scheduler.get_job(self.job_id(movie_id))
        if job is None:
            return None
        return job.trigger.run_date

    def reschedule_all(self) -> int:
        """Schedule a reminder for every stored movie not yet released."""
        count = 0
        with self.app.app_context():
            upcoming = MovieRecord.query.filter(MovieRecord.release_date >= date.today()).all()
            for record in upcoming:
                if self.schedule(record) is not None:
                    count += 1
        logger.info("notifications_rescheduled", count=count)
        return count

    def deliver(self, movie_id: int) -> Optional[int]:
        """
        Job body: record the notification for a released movie.

        Returns:
            The Notification id, or None if the movie is gone
        """
        with self.app.app_context():
            record = db.session.get(MovieRecord, movie_id)
            if record is None:
                logger.info("notification_skipped", movie_id=movie_id, reason="movie_deleted")
                return None

            notification = Notification(
                movie_id=movie_id,
                title=NOTIFICATION_TITLE,
                text=notification_text(record.title),
            )
            db.session.add(notification)
            db.session.commit()

            track_notification_delivered()
            logger.info("movie_released", movie_id=movie_id, title=record.title)
            return notification.id

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import after_setup_logger
from app.core.config import settings


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "cowork",
    broker=_redis_url,
    backend=_redis_url,
    include=["app.tasks.jobs"],
)

celery.conf.timezone = settings.TIMEZONE


@after_setup_logger.connect
def on_setup_logger(logger, **kwargs):
    from app.core.logging import configure_logging
    configure_logging()


celery.conf.beat_schedule = {
    "expire-credits-daily": {
        "task": "app.tasks.jobs.expire_credits",
        "schedule": settings.CREDIT_SWEEP_SCHEDULE_SECONDS,
    },
    "expire-passes-hourly": {
        "task": "app.tasks.jobs.expire_passes",
        "schedule": 3600.0,
    },
    "expire-unpaid-holds-every-5-minutes": {
        "task": "app.tasks.jobs.expire_unpaid_holds",
        "schedule": 300.0,
    },
    "process-email-queue-every-2-minutes": {
        "task": "app.tasks.jobs.process_email_queue",
        "schedule": 120.0,
        "kwargs": {"limit": 50},
    },
}

from app.tasks.celery_app import celery
from app.tasks import worker_jobs

@celery.task(name="app.tasks.jobs.expire_credits")
def expire_credits():
    return worker_jobs.expire_credits()

@celery.task(name="app.tasks.jobs.expire_passes")
def expire_passes():
    return worker_jobs.expire_passes()

@celery.task(name="app.tasks.jobs.expire_unpaid_holds")
def expire_unpaid_holds():
    return worker_jobs.expire_unpaid_holds()


@celery.task(name="app.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)

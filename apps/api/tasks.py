"""Task queue wrappers - API sends task names, never imports worker code."""
from celery import Celery
from dealcore.common.config import get_settings

settings = get_settings()

celery_app = Celery('dealcore')
celery_app.conf.broker_url = settings.celery_broker_url
celery_app.conf.result_backend = settings.celery_result_backend


def queue_facility_resolution(facilities: list[dict]) -> str:
    """Queue a batch of extracted facilities for registry matching."""
    task = celery_app.send_task(
        'services.worker.tasks.resolve_facilities.resolve_facilities_task',
        args=[facilities],
        queue='registry',
    )
    return task.id

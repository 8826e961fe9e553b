from celery import Celery
from celery.schedules import crontab

from folio.core.config import settings

app = Celery(
    "folio",
    include=[
        "folio.tasks.nse_daily_data",
        "folio.tasks.stock_history",
        "folio.tasks.corporate_data",
        "folio.tasks.cleanup",
    ],
)
app.conf.broker_url = settings.CELERY_BROKER_URL
app.conf.result_backend = settings.CELERY_RESULT_BACKEND
app.conf.timezone = settings.TIMEZONE
app.conf.enable_utc = False

app.conf.beat_schedule = {
    "fetch-nse-daily-data": {
        "task": "folio.tasks.nse_daily_data.fetch_nse_daily_data",
        "schedule": crontab(
            hour=settings.DAILY_DATA_REFRESH_HOUR,
            minute=settings.DAILY_DATA_REFRESH_MINUTE,
        ),
    },
    "refresh-stock-history": {
        "task": "folio.tasks.stock_history.refresh_stock_history",
        "schedule": crontab(
            hour=settings.HISTORY_REFRESH_HOUR,
            minute=settings.HISTORY_REFRESH_MINUTE,
        ),
    },
    "refresh-corporate-data": {
        "task": "folio.tasks.corporate_data.refresh_corporate_data",
        "schedule": crontab(
            hour=settings.CORPORATE_REFRESH_HOUR,
            minute=settings.CORPORATE_REFRESH_MINUTE,
        ),
    },
    "cleanup-old-stock-data": {
        "task": "folio.tasks.cleanup.cleanup_old_stock_data",
        "schedule": crontab(
            hour=settings.CLEANUP_HOUR,
            minute=settings.CLEANUP_MINUTE,
        ),
    },
}

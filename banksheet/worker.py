"""
Celery worker entry point.

Run with::

    celery -A banksheet.worker worker -Q statement_processing
"""
from banksheet.celery_app import create_celery_app

app = create_celery_app()

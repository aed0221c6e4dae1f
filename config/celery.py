"""
Celery application for background inventory tasks.
"""
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('config')

# Settings prefixed with CELERY_ in config/settings.py
app.config_from_object('django.conf:settings', namespace='CELERY')

app.autodiscover_tasks()

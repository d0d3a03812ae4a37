"""Celery app, Beat schedule and periodic tasks."""

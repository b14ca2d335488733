"""
Gunicorn configuration for the Dealscore API.

Usage:
    gunicorn app.main:app -c gunicorn.conf.py

The daily sweep runs from cron (scripts/run_daily_sweep.py) or the internal
endpoint, never inside a web worker's startup.
"""

import multiprocessing
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"
workers = int(os.getenv("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"

# The internal sweep endpoint processes every open deal in one request
timeout = int(os.getenv("GUNICORN_TIMEOUT", "300"))
graceful_timeout = 30

accesslog = "-"
errorlog = "-"
loglevel = "info"

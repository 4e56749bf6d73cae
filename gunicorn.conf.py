# Gunicorn configuration for the catalog admin API
# Run with: gunicorn -c gunicorn.conf.py wsgi:app

import multiprocessing
import os

bind = os.getenv("GUNICORN_BIND", "127.0.0.1:8001")

# Mutations serialize on the hierarchy lock, so a modest pool is enough
workers = int(os.getenv("GUNICORN_WORKERS", multiprocessing.cpu_count() + 1))
worker_class = "gthread"
threads = 2

max_requests = 1000
max_requests_jitter = 100
timeout = 30
keepalive = 2
preload_app = True

limit_request_line = 4096
limit_request_fields = 100
limit_request_field_size = 8190

if hasattr(os, "geteuid") and os.geteuid() == 0:
    user = os.getenv("GUNICORN_USER", "catalog")
    group = os.getenv("GUNICORN_GROUP", "catalog")

# Application events are JSON on stdout via structlog; gunicorn keeps its own files
accesslog = os.getenv("GUNICORN_ACCESS_LOG", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOG", "-")
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s %(t)s "%(r)s" %(s)s %(b)s %(D)s "%({x-request-id}o)s"'

"""
Gunicorn configuration for the PawTrail API.

Env vars that override defaults:
  PORT          TCP port to bind (default: 8000)
  WORKERS       worker processes (default: 2)
  LOG_LEVEL     gunicorn log level (default: info)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

workers = int(os.environ.get("WORKERS", "2"))

# Sync FastAPI endpoints run on the worker's AnyIO threadpool; every
# request holds one DB connection while it runs.
worker_class = "uvicorn.workers.UvicornWorker"

# Mobile clients post route batches every few seconds while walking.
keepalive = 10

# Upper bound on a request: POI lookups are capped far below this.
timeout = 60
graceful_timeout = 30

# stdout only; the platform collects it.
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs uid=%({x-user-id}i)s'

# Forked workers must not share the parent's DB connections.
preload_app = False

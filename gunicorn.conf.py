"""
Gunicorn configuration for the daily objectives ledger.

Runs on the user's own machine. Env vars that override defaults:
  PORT      - TCP port to bind (default: 8000)
  BIND_HOST - interface to bind (default: 127.0.0.1, local only)
"""
import os

bind = f"{os.environ.get('BIND_HOST', '127.0.0.1')}:{os.environ.get('PORT', '8000')}"

# One worker: the ledger is a single document with a single rollover timer.
workers = 1

# Each worker runs Uvicorn's ASGI event loop inside Gunicorn's process manager.
worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5
timeout = 120

# Logs go to stdout/stderr.
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

# Graceful restart: wait up to 30 s for in-flight requests to finish.
graceful_timeout = 30

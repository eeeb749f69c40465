"""
Gunicorn configuration.

Several sync workers share one database; concurrent scans for the same
customer are serialized by the provisioning lease table, not by worker
count.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
# Above SHOPIFY_TIMEOUT_SECONDS times retries for a full provisioning run
timeout = int(os.getenv('GUNICORN_TIMEOUT', '60'))
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'qrloyalty'

preload_app = True
graceful_timeout = 30


def on_starting(server):
    server.log.info("[Gunicorn] Starting QR loyalty server...")


def on_exit(server):
    server.log.info("[Gunicorn] QR loyalty server shutting down...")

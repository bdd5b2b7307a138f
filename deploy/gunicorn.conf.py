import multiprocessing
import os

# Each worker queues its own cleanup runs; the first to fire in a slot claims it in sms_job_claims.
wsgi_app = "sms_manager.main:app"
bind = os.getenv("SMS_MANAGER_BIND", "127.0.0.1:8010")
workers = int(os.getenv("SMS_MANAGER_WORKERS", (multiprocessing.cpu_count() * 2) + 1))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 90
graceful_timeout = 30
keepalive = 5
loglevel = os.getenv("SMS_MANAGER_GUNICORN_LOGLEVEL", "info")
accesslog = "-"
errorlog = "-"

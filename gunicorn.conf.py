"""Gunicorn settings for serving ``app:app``.

Every value can be overridden through a ``SUPPLYHUB_*`` environment variable.
"""
import multiprocessing
import os

wsgi_app = "app:app"

bind = os.getenv("SUPPLYHUB_BIND", "0.0.0.0:8000")
workers = int(os.getenv("SUPPLYHUB_WORKERS", min(multiprocessing.cpu_count() * 2 + 1, 8)))
threads = int(os.getenv("SUPPLYHUB_THREADS", "2"))

# PDF uploads are relayed to the document store inside the request.
timeout = int(os.getenv("SUPPLYHUB_TIMEOUT", "120"))
graceful_timeout = 30
max_requests = int(os.getenv("SUPPLYHUB_MAX_REQUESTS", "1000"))
max_requests_jitter = 100

loglevel = os.getenv("SUPPLYHUB_LOG_LEVEL", "info")
accesslog = os.getenv("SUPPLYHUB_ACCESS_LOG", "-")
errorlog = os.getenv("SUPPLYHUB_ERROR_LOG", "-")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(L)ss req=%({x-request-id}o)s'

forwarded_allow_ips = os.getenv("SUPPLYHUB_FORWARDED_ALLOW_IPS", "127.0.0.1")

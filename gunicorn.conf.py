# gunicorn.conf.py
# run: gunicorn -c gunicorn.conf.py astroclock.main:app
import multiprocessing, os

wsgi_app = "astroclock.main:app"
bind = f"0.0.0.0:{os.getenv('PORT','5000')}"
workers = int(os.getenv("WEB_CONCURRENCY", max(2, multiprocessing.cpu_count())))  # CPU-bound solver: prefer processes
threads = int(os.getenv("GUNICORN_THREADS", "1"))  # each thread owns its own calculation cache pool
worker_class = "sync" if threads == 1 else "gthread"
timeout = 90
graceful_timeout = 30
keepalive = 2
accesslog = "-"   # stdout
errorlog = "-"    # stderr
loglevel = os.getenv("LOGLEVEL", "info")

# add request id if present
access_log_format = (
    '%(h)s - "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" '
    'req_id:%({X-Request-ID}i)s rt:%(L)s'
)

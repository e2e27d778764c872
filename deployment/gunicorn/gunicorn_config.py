bind = "unix:/var/www/fastcaisse/contact-api/gunicorn.sock"
workers = 3
worker_class = "sync"
worker_tmp_dir = "/dev/shm"
max_requests = 1000
max_requests_jitter = 100
# Turnstile (10s) + two SMTP sends (30s each) must fit in one request
timeout = 90
keepalive = 5

# Logging
accesslog = "/var/log/contact-api/access.log"
errorlog = "/var/log/contact-api/error.log"
loglevel = "info"
access_log_format = '%(h)s %(l)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "contact-api"

# Server mechanics
daemon = False
pidfile = "/var/run/contact-api/gunicorn.pid"
user = "deploy"
group = "deploy"
umask = 0o007


# Server hooks
def when_ready(server):
    """Called just after the server is started."""
    server.log.info("Contact API ready. Spawning workers")


def worker_abort(worker):
    """Called when a worker times out (usually a hung SMTP relay)."""
    worker.log.warning("Worker aborted; check SMTP and Turnstile reachability")

# gunicorn.conf.py
import os

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '10000')}"

# Worker processes
workers = int(os.environ.get('WEB_CONCURRENCY', 2))
worker_class = "gthread"  # Stats requests fan out reads on a thread pool
threads = 4

# Logging
loglevel = "info"
accesslog = "-"
errorlog = "-"

# Process naming
proc_name = "clubstats"

# Timeout
timeout = 60
keepalive = 2

# Preload the application
preload_app = True

# Maximum requests per worker
max_requests = 1000
max_requests_jitter = 50

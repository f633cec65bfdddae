"""Gunicorn configuration for Flask-SocketIO (threading async mode)"""

import os

# gthread matches Flask-SocketIO's threading mode (no eventlet/gevent monkey patching,
# which breaks Firebase gRPC). WebSocket upgrades go through simple-websocket.
worker_class = 'gthread'
threads = int(os.environ.get('GUNICORN_THREADS', '100'))

# The waiting queue lives in the worker's memory: exactly one worker, and one
# matchmaking instance. ROOM_STORE=firestore makes rooms durable and safe to
# update from other processes; REDIS_URL fans pushes out to other socket
# servers. Neither one shares the queue.
workers = 1

# Binding
bind = f"0.0.0.0:{os.environ.get('PORT', '5000')}"

# Logging
accesslog = '-'
errorlog = '-'
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()

# Timeout settings (long-polling transports hold requests open)
timeout = 120
graceful_timeout = 30
keepalive = 5

# Worker recycling would drop the in-memory queue
max_requests = 0

worker_tmp_dir = '/dev/shm'

reload = False

# Firebase must initialize after fork
preload_app = False


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info("🚀 Gunicorn master process starting...")


def when_ready(server):
    """Called just after the server is started."""
    server.log.info("✅ Gunicorn server ready to accept connections")


def worker_int(worker):
    """Called when a worker receives the SIGINT or SIGQUIT signal."""
    worker.log.warning(f"⚠️ Worker {worker.pid} received interrupt signal")


def worker_abort(worker):
    """Called when a worker receives the SIGABRT signal (timeout)."""
    worker.log.error(f"❌ WORKER TIMEOUT: Worker {worker.pid} aborted!")
    import traceback
    import sys
    traceback.print_stack(file=sys.stderr)


def on_exit(server):
    """Called just before the master process exits."""
    server.log.info("🛑 Gunicorn master process shutting down...")

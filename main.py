# main.py
# Do NOT import gevent or eventlet.
# We are using 'threading' mode to ensure compatibility with Firebase (gRPC).

import os
# gRPC stability under gunicorn: Firebase is lazy-loaded post-fork
os.environ.setdefault("GRPC_ENABLE_FORK_SUPPORT", "0")
os.environ.setdefault("GRPC_POLL_STRATEGY", "poll")

from flask import Flask

from config import Config
from logging_config import setup_logging

setup_logging(Config.LOG_LEVEL)

from extensions import socketio
from errors import register_error_handlers

# Importing these registers their @socketio.on handlers
import general_events
import lobby_events
from global_gd_routes import global_gd_bp
from health_check import health_bp

app = Flask(__name__)
app.config.from_object(Config)

socketio.init_app(app, cors_allowed_origins=Config.CORS_ALLOWED_ORIGINS)

app.register_blueprint(global_gd_bp)
app.register_blueprint(health_bp)
register_error_handlers(app)

if Config.START_MATCHMAKER:
    lobby_events.start_matchmaker(Config.MATCHMAKER_SWEEP_SECONDS)

if __name__ == "__main__":
    # allow_unsafe_werkzeug: dev server only; use_reloader=False keeps one sweep thread
    socketio.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "5000")),
                 debug=Config.LOG_LEVEL == "DEBUG", allow_unsafe_werkzeug=True, use_reloader=False)

"""WSGI entry point: gunicorn -c gunicorn_config.py wsgi:app"""

import os

from main import app, socketio

if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "5000")), allow_unsafe_werkzeug=True)

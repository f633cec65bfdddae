"""Health check endpoint for monitoring worker status"""

import os
from collections import Counter

import psutil
from flask import Blueprint, jsonify

import state

health_bp = Blueprint('health', __name__)


def _room_counts():
    return dict(Counter(room.status for room in state.coordinator.list_rooms()))


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Load balancer health check: server status, memory usage, queue depth.
    """
    try:
        process = psutil.Process(os.getpid())
        memory_mb = process.memory_info().rss / 1024 / 1024

        return jsonify({
            "status": "healthy",
            "pid": os.getpid(),
            "memory_mb": round(memory_mb, 2),
            "num_threads": process.num_threads(),
            "queue_sizes": state.matchmaker.queue_sizes(),
        }), 200

    except Exception as e:
        return jsonify({
            "status": "unhealthy",
            "error": str(e)
        }), 500


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """
    Detailed metrics endpoint for debugging
    """
    try:
        process = psutil.Process(os.getpid())
        memory_info = process.memory_info()

        return jsonify({
            "process": {
                "pid": os.getpid(),
                "cpu_percent": process.cpu_percent(interval=0.1),
                "num_threads": process.num_threads(),
                "num_fds": process.num_fds() if hasattr(process, 'num_fds') else None
            },
            "memory": {
                "rss_mb": round(memory_info.rss / 1024 / 1024, 2),
                "vms_mb": round(memory_info.vms / 1024 / 1024, 2),
                "percent": process.memory_percent()
            },
            "queues": {
                mode: {"waiting": size, "group_size": state.matchmaker.modes[mode]}
                for mode, size in state.matchmaker.queue_sizes().items()
            },
            "rooms": _room_counts(),
        }), 200

    except Exception as e:
        return jsonify({
            "error": str(e)
        }), 500

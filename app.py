# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

#!/usr/bin/env python3
"""
Ride Schedule Sync - Operational endpoints for the retry queue
"""
import logging
import os

from flask import Flask, jsonify, redirect, request

import config
from models import AuthContext
from remote.request_builder import RequestBuilder
from remote.transport import RequestsTransport
from sync.notifier import LoggingNotifier
from sync.queue_store import JsonFileQueuePersistence
from sync.retry_queue import OperationRegistry, RemoteRequestReplayer, RetryQueue
from sync.scheduler import RetryScheduler
from utils.logger import SERVICE_NAME, configure_logging
from utils.timezone import utc_now

# Configure logging
configure_logging()
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def build_default_queue() -> RetryQueue:
    """Retry queue backed by the JSON queue file, replaying stored remote requests"""
    registry = OperationRegistry()
    registry.register(
        RemoteRequestReplayer.OPERATION_TYPE,
        RemoteRequestReplayer(RequestBuilder(), RequestsTransport(), AuthContext.from_config)
    )
    return RetryQueue(
        JsonFileQueuePersistence(config.RETRY_QUEUE_FILE),
        executor=registry,
        notifier=LoggingNotifier(),
    )


def create_app(retry_queue: RetryQueue = None, scheduler: RetryScheduler = None) -> Flask:
    """Build the Flask app around a retry queue (and optional background scheduler)"""
    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY

    queue = retry_queue if retry_queue is not None else build_default_queue()
    app.config['RETRY_QUEUE'] = queue
    app.config['RETRY_SCHEDULER'] = scheduler

    # Security Headers Middleware
    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses"""
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Cache-Control'] = 'no-store'

        # Remove server information
        response.headers['Server'] = 'Ride Schedule Sync'
        return response

    # HTTPS Enforcement Middleware
    @app.before_request
    def enforce_https():
        if request.headers.get('X-Forwarded-Proto') == 'http':
            url = request.url.replace('http://', 'https://', 1)
            return redirect(url, code=301)
        return None

    @app.route('/health')
    def health_check():
        """Lightweight health check"""
        return jsonify({
            "status": "healthy",
            "timestamp": utc_now().isoformat(),
            "service": SERVICE_NAME,
            "version": VERSION
        }), 200

    @app.route('/queue/status')
    def queue_status():
        """Queue statistics plus one display row per pending item"""
        try:
            status = queue.get_status()
            if scheduler is not None:
                status['scheduler'] = scheduler.get_scheduler_status()
            return jsonify(status)
        except Exception as e:
            logger.error(f"Queue status error: {e}")
            return jsonify({"error": str(e)}), 500

    @app.route('/queue/process', methods=['POST'])
    def process_queue():
        """Run one processing pass now"""
        try:
            result = queue.process_due()
        except Exception as e:
            logger.error(f"Manual queue processing failed: {e}")
            return jsonify({"error": str(e)}), 500

        if result.skipped:
            return jsonify({
                "status": "already_running",
                "message": "Queue processing is already in progress"
            }), 409

        return jsonify({"status": "completed", **result.to_dict()}), 200

    @app.route('/queue/clear', methods=['POST'])
    def clear_queue():
        """Drop every pending item"""
        try:
            removed = len(queue)
            queue.clear()
        except Exception as e:
            logger.error(f"Queue clear failed: {e}")
            return jsonify({"error": str(e)}), 500

        logger.warning(f"Retry queue cleared via API ({removed} item(s) removed)")
        return jsonify({"status": "cleared", "removed": removed}), 200

    return app


def _build_scheduled_app() -> Flask:
    queue = build_default_queue()
    scheduler = None
    if config.RETRY_SCHEDULER_ENABLED:
        scheduler = RetryScheduler(queue)
        scheduler.start()
    return create_app(queue, scheduler)


app = _build_scheduled_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', config.PORT))
    logger.info(f"Starting ride schedule sync service on port {port}")
    app.run(host='0.0.0.0', port=port)

# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

import os

# A single worker owns the retry queue file and the background retry scheduler
workers = 1
worker_class = 'sync'
timeout = 120  # A queue pass makes at most one remote call per due item
keepalive = 2

bind = f"0.0.0.0:{os.environ.get('PORT', '5000')}"

# Logging goes to stdout/stderr; app records are already JSON
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
accesslog = '-'
errorlog = '-'

# Load the app in the worker so the scheduler thread lives there
preload_app = False

proc_name = 'ride-schedule-sync'

max_requests = 0
max_requests_jitter = 0

print(f"Gunicorn binding to {bind}")

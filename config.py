# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Environment-based configuration for Ride Schedule Sync
"""
import os
import secrets

# Environment Detection
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')
DEBUG = ENVIRONMENT == 'development'

# Remote Scheduling Service
REMOTE_BASE_URL = os.environ.get('REMOTE_BASE_URL', "https://ridewithgps.com").rstrip('/')
AUTH_MODE = os.environ.get('AUTH_MODE', 'basic_auth')
RWGPS_API_KEY = os.environ.get('RWGPS_API_KEY', '')
RWGPS_AUTH_TOKEN = os.environ.get('RWGPS_AUTH_TOKEN', '')
RWGPS_SESSION_COOKIE = os.environ.get('RWGPS_SESSION_COOKIE', '')
REQUEST_TIMEOUT = int(os.environ.get('REQUEST_TIMEOUT', 30))

# Club Settings
CLUB_USER_ID = int(os.environ.get('CLUB_USER_ID', 621846))
GROUP_NAMES = [g.strip() for g in os.environ.get('GROUP_NAMES', 'A,B,C').split(',') if g.strip()]
RIDE_LEADER_TBD_NAME = os.environ.get('RIDE_LEADER_TBD_NAME', 'To Be Determined')

# Retry Queue
RETRY_QUEUE_FILE = os.environ.get('RETRY_QUEUE_FILE', 'retry_queue.json')
RETRY_INTERVAL_MIN = int(os.environ.get('RETRY_INTERVAL_MIN', 5))
RETRY_SCHEDULER_ENABLED = os.environ.get('RETRY_SCHEDULER_ENABLED', 'False').lower() == 'true'

# Display
TIMEZONE = os.environ.get('TIMEZONE', 'America/Los_Angeles')

# Application Settings
SECRET_KEY = os.environ.get('SECRET_KEY', secrets.token_hex(32))
PORT = int(os.environ.get('PORT', 5000))

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
STRUCTURED_LOGGING = os.environ.get('STRUCTURED_LOGGING', 'True').lower() == 'true'

# Development Settings
if DEBUG:
    LOG_LEVEL = 'DEBUG'
    RETRY_INTERVAL_MIN = 1  # Faster retries for development

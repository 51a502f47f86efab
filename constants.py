"""
Application-wide constants for Device Booking
"""

# Dates arrive from HTML <input type="date"> as YYYY-MM-DD
DATE_FORMAT = '%Y-%m-%d'

# Input Validation
MAX_DEVICE_NAME_LENGTH = 100
MAX_INTERNAL_ID_LENGTH = 50
MAX_USERNAME_LENGTH = 80
MIN_PASSWORD_LENGTH = 6

# Calendar navigation bounds (?year= outside this range falls back to today)
CALENDAR_MIN_YEAR = 1900
CALENDAR_MAX_YEAR = 2100

# CSV Import
MAX_IMPORT_SIZE = 10 * 1024 * 1024  # 10MB
CSV_HEADER = ('internal_id', 'name')

# Rate Limiting (requests per time period)
RATE_LIMIT_LOGIN = "5 per minute"
RATE_LIMIT_DEFAULTS = ["200 per day", "50 per hour"]

# Sample devices for seed_db.py (internal id, name)
SAMPLE_DEVICES = [
    ('23A-001', 'iPhone 15'),
    ('23A-002', 'Pixel 8'),
    ('23A-003', 'Galaxy S24'),
    ('23A-004', 'iPad Air'),
]

"""Constants for nowline.

This module centralizes all magic numbers and default values used throughout the application.
"""


# Task defaults
DEFAULT_DURATION_MINUTES = 30  # used when a task without an estimate reaches the timeline

# Timestamp formats
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"
HHMM_FORMAT = "%H:%M"

# Day geometry
MINUTES_PER_DAY = 1440

# Promotion monitor
DEFAULT_TICK_INTERVAL_SECONDS = 1.0

# Prefix of derived unplugged placeholder block ids
UNPLUGGED_ID_PREFIX = "unplugged"

"""Configuration loaded from .env"""

import os

from dotenv import load_dotenv

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Archive reading
MAX_NESTED_ARCHIVE_DEPTH = int(os.getenv("MAX_NESTED_ARCHIVE_DEPTH", "3"))

# Analysis windows (days, ending at the reference date)
INSIGHT_WINDOW_DAYS = int(os.getenv("INSIGHT_WINDOW_DAYS", "30"))
SLEEP_WINDOW_DAYS = int(os.getenv("SLEEP_WINDOW_DAYS", "90"))

# Correlation thresholds
MIN_ALIGNED_SAMPLES = int(os.getenv("MIN_ALIGNED_SAMPLES", "10"))
CORRELATION_MIN_ABS_R = float(os.getenv("CORRELATION_MIN_ABS_R", "0.3"))
CORRELATION_MAX_P = float(os.getenv("CORRELATION_MAX_P", "0.05"))

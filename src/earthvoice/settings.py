"""
src/earthvoice/settings.py
==========================
Central place for every environment variable and constant used by the
realtime voice client and its tool store.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv(override=False)

# ------------------------------------------------------------------------------
# Realtime endpoint
# ------------------------------------------------------------------------------
REALTIME_URL: str = os.getenv("REALTIME_URL", "wss://api.openai.com/v1/realtime")
REALTIME_MODEL: str = os.getenv("REALTIME_MODEL", "")
REALTIME_API_KEY: str = os.getenv("REALTIME_API_KEY", "")
REALTIME_SESSION_CONFIG: str = os.getenv("REALTIME_SESSION_CONFIG", "")
REALTIME_VOICE: str = os.getenv("REALTIME_VOICE", "verse")

# Socket open retries and per-attempt timeout (seconds)
REALTIME_CONNECT_MAX_TRIES: int = int(os.getenv("REALTIME_CONNECT_MAX_TRIES", "3"))
REALTIME_CONNECT_TIMEOUT: float = float(os.getenv("REALTIME_CONNECT_TIMEOUT", "10.0"))

# All ms -> sample conversions use this rate; it is never read from the server.
REALTIME_SAMPLE_RATE: int = 24_000

# ------------------------------------------------------------------------------
# Earth tool store HTTP collaborators
# ------------------------------------------------------------------------------
NOMINATIM_SEARCH_URL: str = os.getenv(
    "NOMINATIM_SEARCH_URL", "https://nominatim.openstreetmap.org/search"
)
NOMINATIM_CONTACT_EMAIL: str = os.getenv("NOMINATIM_CONTACT_EMAIL", "")
OPEN_METEO_FORECAST_URL: str = os.getenv(
    "OPEN_METEO_FORECAST_URL", "https://api.open-meteo.com/v1/forecast"
)
OPEN_METEO_ARCHIVE_URL: str = os.getenv(
    "OPEN_METEO_ARCHIVE_URL", "https://archive-api.open-meteo.com/v1/archive"
)
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10.0"))

GEOCODE_CACHE_MAX_SIZE: int = 100
GEOCODE_CACHE_TTL_SECONDS: float = 60 * 60

"""Django settings for the EV charge planner project."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "change-me-in-production")
DEBUG = os.getenv("DJANGO_DEBUG", "1") == "1"
ALLOWED_HOSTS = [host for host in os.getenv("DJANGO_ALLOWED_HOSTS", "").split(",") if host]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "charge_planner",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"

WSGI_APPLICATION = "config.wsgi.application"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "charge-planner-cache",
    }
}

GOOGLE_ROUTES_API_KEY = os.getenv("GOOGLE_ROUTES_API_KEY", "")
GOOGLE_ROUTES_URL = os.getenv(
    "GOOGLE_ROUTES_URL", "https://routes.googleapis.com/directions/v2:computeRoutes"
)
GOOGLE_ROUTES_TIMEOUT_SECONDS = float(os.getenv("GOOGLE_ROUTES_TIMEOUT_SECONDS", "12"))
GOOGLE_ROUTES_RETRY_COUNT = int(os.getenv("GOOGLE_ROUTES_RETRY_COUNT", "2"))

CHARGEPOINT_MAP_API_URL = os.getenv(
    "CHARGEPOINT_MAP_API_URL", "https://mc.chargepoint.com/map-prod/v2"
)
CHARGEPOINT_TIMEOUT_SECONDS = float(os.getenv("CHARGEPOINT_TIMEOUT_SECONDS", "12"))
CHARGEPOINT_RETRY_COUNT = int(os.getenv("CHARGEPOINT_RETRY_COUNT", "1"))

ROUTE_CACHE_TTL_SECONDS = int(os.getenv("ROUTE_CACHE_TTL_SECONDS", "600"))

EV_BUFFER_PERCENT = float(os.getenv("EV_BUFFER_PERCENT", "0.30"))
EV_CHARGE_TARGET_PERCENT = float(os.getenv("EV_CHARGE_TARGET_PERCENT", "90"))
INTERMEDIATE_REACH_MILES = float(os.getenv("INTERMEDIATE_REACH_MILES", "1.0"))
MAX_CHARGING_STOPS = int(os.getenv("MAX_CHARGING_STOPS", "20"))

STATION_SEARCH_HALF_WIDTH_KM = float(os.getenv("STATION_SEARCH_HALF_WIDTH_KM", "7"))
STATION_SEARCH_PAGE_SIZE = int(os.getenv("STATION_SEARCH_PAGE_SIZE", "10"))
STATION_FALLBACK_OVERLAP = float(os.getenv("STATION_FALLBACK_OVERLAP", "0.8"))
STATION_FALLBACK_MAX_POINTS = int(os.getenv("STATION_FALLBACK_MAX_POINTS", "300"))

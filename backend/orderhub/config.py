# backend/orderhub/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/orderhub.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///orderhub.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # GloriaFood POS API
    GLORIAFOOD_API_URL = os.environ.get("GLORIAFOOD_API_URL", "https://pos.globalfoodsoft.com")
    GLORIAFOOD_SECRET_KEY = os.environ.get("GLORIAFOOD_SECRET_KEY", "")
    GLORIAFOOD_API_VERSION = os.environ.get("GLORIAFOOD_API_VERSION", "2")

    # Shared secret GloriaFood sends in the Authorization header of push deliveries
    GLORIAFOOD_MASTER_KEY = os.environ.get("GLORIAFOOD_MASTER_KEY", "")

    # Bearer token for the read API
    API_AUTH_TOKEN = os.environ.get("API_AUTH_TOKEN", "")

    REMOTE_TIMEOUT_SECONDS = float(os.environ.get("REMOTE_TIMEOUT_SECONDS", "15"))

    # Cache TTLs (seconds)
    MENU_CACHE_TTL = int(os.environ.get("MENU_CACHE_TTL", "3600"))
    DASHBOARD_CACHE_TTL = int(os.environ.get("DASHBOARD_CACHE_TTL", "300"))

    # A menu sync lease older than this is considered abandoned
    MENU_SYNC_LEASE_SECONDS = int(os.environ.get("MENU_SYNC_LEASE_SECONDS", "600"))

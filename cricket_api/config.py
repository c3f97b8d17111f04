# cricket_api/config.py
from __future__ import annotations

import os
from typing import Dict

from dotenv import load_dotenv

# Load .env from project root
load_dotenv()


def _get_env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_bool(name: str, default: bool = False) -> bool:
    raw = _get_env(name, "1" if default else "0").lower()
    return raw in {"1", "true", "yes", "on"}


# -------------------------
# Firebase / Firestore credentials
# -------------------------
FIREBASE_PROJECT_ID: str = _get_env("FIREBASE_PROJECT_ID")
FIREBASE_PRIVATE_KEY_ID: str = _get_env("FIREBASE_PRIVATE_KEY_ID")
# .env files usually carry the PEM key on one line with literal "\n"
FIREBASE_PRIVATE_KEY: str = _get_env("FIREBASE_PRIVATE_KEY").replace("\\n", "\n")
FIREBASE_CLIENT_EMAIL: str = _get_env("FIREBASE_CLIENT_EMAIL")
FIREBASE_CLIENT_ID: str = _get_env("FIREBASE_CLIENT_ID")

# Alternative: path to a service account JSON file
GOOGLE_APPLICATION_CREDENTIALS: str = _get_env("GOOGLE_APPLICATION_CREDENTIALS")


# -------------------------
# Collections
# -------------------------
COLLECTION_SUFFIX: str = _get_env("COLLECTION_SUFFIX", "_v2")

COLLECTIONS: Dict[str, str] = {
    "players": f"players{COLLECTION_SUFFIX}",
    "teams": f"teams{COLLECTION_SUFFIX}",
    "matches": f"matches{COLLECTION_SUFFIX}",
    "matchSquads": f"match_squads{COLLECTION_SUFFIX}",
    "sequences": f"sequences{COLLECTION_SUFFIX}",
    "tournaments": f"tournaments{COLLECTION_SUFFIX}",
    "migrationState": f"migration_state{COLLECTION_SUFFIX}",
}


# -------------------------
# Migration tuning
# -------------------------
SOURCE_JSON_PATH: str = _get_env("SOURCE_JSON_PATH", "data/matches.json")
SOURCE_HTTP_TIMEOUT_SECONDS: int = _get_env_int("SOURCE_HTTP_TIMEOUT_SECONDS", 30)

# Entity writes are heavy (nested docs), career updates are small
MIGRATION_BATCH_SIZE: int = _get_env_int("MIGRATION_BATCH_SIZE", 10)
CAREER_BATCH_SIZE: int = _get_env_int("CAREER_BATCH_SIZE", 500)
MAX_CONCURRENT_COMMITS: int = _get_env_int("MAX_CONCURRENT_COMMITS", 4)

SEQUENCE_MAX_RETRIES: int = _get_env_int("SEQUENCE_MAX_RETRIES", 5)
SEQUENCE_RETRY_BASE_SECONDS: float = _get_env_float("SEQUENCE_RETRY_BASE_SECONDS", 0.05)

RECENT_MATCHES_LIMIT: int = _get_env_int("RECENT_MATCHES_LIMIT", 10)
RECENT_TEAMS_LIMIT: int = _get_env_int("RECENT_TEAMS_LIMIT", 5)

# Fraction of the shorter name's words that must overlap
TOKEN_OVERLAP_THRESHOLD: float = _get_env_float("TOKEN_OVERLAP_THRESHOLD", 0.5)


# -------------------------
# Domain defaults
# -------------------------
DEFAULT_VENUE: str = _get_env("DEFAULT_VENUE", "MM Sports Park- Box Cricket")
DEFAULT_TOURNAMENT_ID: str = _get_env("DEFAULT_TOURNAMENT_ID", "1000000000000000001")
DEFAULT_TOURNAMENT_NAME: str = _get_env("DEFAULT_TOURNAMENT_NAME", "EPL WEEKEND MAHAMUKABALA")
DEFAULT_TOURNAMENT_SHORT_NAME: str = _get_env("DEFAULT_TOURNAMENT_SHORT_NAME", "EPL")
DEFAULT_SEASON: int = _get_env_int("DEFAULT_SEASON", 2025)
DEFAULT_MATCH_TYPE: str = _get_env("DEFAULT_MATCH_TYPE", "T20")


# -------------------------
# API / logging
# -------------------------
API_CACHE_TTL_SECONDS: int = _get_env_int("API_CACHE_TTL_SECONDS", 60)
LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO").upper()
SHOW_PROGRESS: bool = _get_env_bool("SHOW_PROGRESS", True)


def firebase_credentials_configured() -> bool:
    if GOOGLE_APPLICATION_CREDENTIALS:
        return True
    return bool(FIREBASE_PROJECT_ID and FIREBASE_PRIVATE_KEY and FIREBASE_CLIENT_EMAIL)


def validate_config() -> None:
    # Batch sizes (Firestore caps a batch at 500 writes)
    if MIGRATION_BATCH_SIZE <= 0 or MIGRATION_BATCH_SIZE > 500:
        raise RuntimeError("MIGRATION_BATCH_SIZE must be between 1 and 500")

    if CAREER_BATCH_SIZE <= 0 or CAREER_BATCH_SIZE > 500:
        raise RuntimeError("CAREER_BATCH_SIZE must be between 1 and 500")

    if MAX_CONCURRENT_COMMITS <= 0:
        raise RuntimeError("MAX_CONCURRENT_COMMITS must be positive")

    if SEQUENCE_MAX_RETRIES <= 0:
        raise RuntimeError("SEQUENCE_MAX_RETRIES must be positive")

    if not (0.0 < TOKEN_OVERLAP_THRESHOLD <= 1.0):
        raise RuntimeError("TOKEN_OVERLAP_THRESHOLD must be in (0, 1]")

    if RECENT_MATCHES_LIMIT <= 0 or RECENT_TEAMS_LIMIT <= 0:
        raise RuntimeError("RECENT_MATCHES_LIMIT and RECENT_TEAMS_LIMIT must be positive")

    if len(DEFAULT_TOURNAMENT_ID) != 19 or not DEFAULT_TOURNAMENT_ID.isdigit():
        raise RuntimeError("DEFAULT_TOURNAMENT_ID must be a 19-digit numeric string")

    # Partial inline credentials are almost always a broken .env
    inline = [FIREBASE_PROJECT_ID, FIREBASE_PRIVATE_KEY, FIREBASE_CLIENT_EMAIL]
    if any(inline) and not all(inline):
        raise RuntimeError(
            "FIREBASE_PROJECT_ID, FIREBASE_PRIVATE_KEY and FIREBASE_CLIENT_EMAIL must be set together"
        )

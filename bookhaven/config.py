"""
Configuration settings for BookHaven.

Values that operators may want to change are read from the environment;
the rest are fixed rules of the catalogue (field bounds, sentinels).
"""

import os
from pathlib import Path
from typing import Optional

# Project paths
PACKAGE_ROOT = Path(__file__).resolve().parent
SEED_FILE = PACKAGE_ROOT / "data" / "seed_books.json"


def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name, "").strip()
    return Path(value) if value else None


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# Storage
# When unset, the store lives in memory only.
DATA_FILE = _env_path("BOOKHAVEN_DATA_FILE")
LOAD_SEED_BOOKS = _env_flag("BOOKHAVEN_SEED", True)

# Catalogue view
PAGE_SIZE = int(os.getenv("BOOKHAVEN_PAGE_SIZE", "5"))
ALL_GENRES = "all"
SORT_KEYS = ("recent", "rating", "year", "title")
DEFAULT_SORT = "recent"

# Reviews
MIN_RATING = 1
MAX_RATING = 5
DEFAULT_RATING = 5
REVIEW_TEXT_MIN = 10
REVIEW_TEXT_MAX = 1000

# Books
TITLE_MAX = 200
AUTHOR_MAX = 100
DESCRIPTION_MIN = 10
DESCRIPTION_MAX = 2000
GENRE_MAX = 50
MIN_PUBLISHED_YEAR = 1000

# Profiles
DEFAULT_PROFILE_NAME = "Anonymous User"
ANONYMOUS_REVIEWER = "Anonymous"

# Sessions
# Anonymous browsers are told apart by this cookie.
SESSION_COOKIE = "bookhaven_session"

# Logging
LOG_LEVEL = os.getenv("BOOKHAVEN_LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

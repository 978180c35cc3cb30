"""
LMS Backend Configuration
Store connection and paging settings
"""

import os

# MongoDB
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "lms")

# "mongo" for a real deployment, "memory" for local runs without a database
STORE_BACKEND = os.getenv("LMS_STORE_BACKEND", "mongo").lower()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Pagination defaults
DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = 10

"""
Festival API configuration.
All values come from the Lambda environment.
"""

import os

TABLE_NAME = os.environ.get("TABLE_NAME", "festival-main")
ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY", "")
ADMIN_KEY_HEADER = "x-api-key"
BASE_PATH = os.environ.get("BASE_PATH", "/functions/v1")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Default page sizes per list endpoint
EVENTS_PAGE_SIZE = 10
ARTISTS_PAGE_SIZE = 20
GROUPS_PAGE_SIZE = 20

from __future__ import annotations

CURRENT_SCHEMA_VERSION = 1
DEFAULT_DB_FILENAME = "tm.db"
DEFAULT_CONFIG_FILENAME = "tm.yml"

DEFAULT_MIN_MATCH_PERCENT = 70
DEFAULT_MAX_RESULTS = 5
# Upper bound on entries scored per lookup.
DEFAULT_CANDIDATE_LIMIT = 500

"""Shared constants for trunkflow."""

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_CANCELED = 3
EXIT_ROLLBACK_FAILED = 4

# Story-Id tag value for commits not tied to any story
STORY_ID_UNASSIGNED = "unassigned"

LOCAL_CONFIG_FILE = ".trunkflow.yml"

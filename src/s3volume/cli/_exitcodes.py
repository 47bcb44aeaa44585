"""Exit codes for the s3vol CLI."""

SUCCESS = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2
STORAGE_ERROR = 3
NOT_FOUND = 4
INCOMPLETE_RESULT = 5

"""Constants for the rotation module."""

# Reported when the usage probe fails, so rotation treats the identity as spent
ASSUMED_EXHAUSTED_USAGE = 999.0

# Result of wait_for_run when the run outlives its time budget
WORKFLOW_TIMEOUT_RESULT = "timeout"

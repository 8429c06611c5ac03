"""Agent CLI subprocess runner.

This module manages agent CLI execution:
- Argument construction from the run configuration
- Dry-run short-circuit with a synthetic success
- Incremental parsing and rendering of the streamed event output
- Exit code mapping to success, failure or run-wide interrupt
"""

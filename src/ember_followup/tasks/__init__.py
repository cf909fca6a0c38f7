"""
Follow-up task subsystem.

Components:
- lifecycle.py: status transitions, normalization and the past-due sweep
- sweeper.py: background job body that sweeps and raises alerts
"""

"""
Core building blocks.

Components:
- models.py: entities, enums and input records
- clock.py: timestamp helpers (ISO-8601, UTC)
- errors.py: error taxonomy
- ports.py: Protocols for email and notifications
- sessions.py: in-memory session tokens
- jobs.py: periodic background jobs
- state.py: AppState wiring object
"""

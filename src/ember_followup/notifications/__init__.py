"""
Outbound alerts.

Components:
- email.py: smtplib transport with an on-disk outbox
- alerts.py: best-effort notification and email fan-out
"""

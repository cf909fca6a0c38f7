"""
Reports.

Components:
- digest.py: weekly/monthly windows, digest aggregation, report files
- scheduler.py: fires digests according to each church's preference
"""

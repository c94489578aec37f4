"""
RegWatch Violation Tracking.

Components:
- tracker: ViolationTracker (record, resolve, status changes, payments) and
  attention flags
"""

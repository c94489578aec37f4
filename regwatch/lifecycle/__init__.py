"""
RegWatch Compliance Lifecycle.

Components:
- rules: status transition table, risk escalation and violation escalation tables
- schedule: Review Interval Table and calendar-month arithmetic
- scoring: compliance score and rating bands
- engine: RiskStatusEngine applying the tables with audit and alerts
"""

"""
RegWatch Alerting.

Components:
- rules: priority tables, dedup keys and message templates
- notifier: the single write path for new alerts (plain and deduplicated)
- engine: scheduled rules, acknowledge/resolve, alert queries
"""

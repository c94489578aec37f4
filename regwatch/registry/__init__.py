"""
RegWatch Entity Registry.

Components:
- validator: field-level checks for entity and violation candidates
- registry: register, update, deactivate/reinstate, lookups
"""

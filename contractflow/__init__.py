"""
Contract lifecycle backend.

Components:
- fields: typed field definitions (tagged union by kind)
- blueprints: template store
- workflow: contract state machine, field edits and audit trail
- access: ownership checks
- identity: registration, login and bearer tokens
"""

__version__ = "1.0.0"

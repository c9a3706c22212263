"""
DTE submission backend package.

Design intent:
- Route every electronic tax document kind through one dispatch engine.
- Keep contingency fallback explicit, audited and limited to transmission outages.
"""

"""
Reference document kinds (invoice, CCF, credit note, retention) for the dispatch engine.

Design intent:
- Give each kind a typed request model and a use case the engine can call without
  knowing which kind it is.
- Keep the authority transmitter behind a narrow, swappable contract.
"""

"""
API orchestration boundary for the DTE backend.

Design intent:
- Expose thin, typed endpoints over the dispatch engine.
- Keep failure-to-status mapping explicit and predictable.
- Orchestrate modules without embedding document rules in routers.
"""

from .audit_store import InMemoryAuditStore
from .config import DispatchConfig, load_config

__all__ = ["DispatchConfig", "load_config", "InMemoryAuditStore"]

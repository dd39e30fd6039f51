from .cloud_data_object import CloudDataEvent, CloudDataObject
from .concurrency_gate import ConcurrencyGate
from .save_orchestrator import SaveOrchestrator
from .session_context import (
    default_session,
    get_default_session,
    has_default_session,
    init_default_session,
    reset_default_session,
)

__all__ = [
    "CloudDataEvent",
    "CloudDataObject",
    "ConcurrencyGate",
    "SaveOrchestrator",
    "default_session",
    "get_default_session",
    "has_default_session",
    "init_default_session",
    "reset_default_session",
]

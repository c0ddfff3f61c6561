"""Session engine: registry, transports, demultiplexer, logs, orchestrator."""
from .models import (
    LaunchSpec,
    LogTail,
    OutputKind,
    OutputRecord,
    SessionHandle,
    SessionKey,
    SessionRequest,
    SessionState,
    SessionStatus,
    TerminalKind,
    TerminalMarker,
)
from .config import EngineConfig
from .demux import OutputDemultiplexer
from .errors import (
    InvalidSessionRequestError,
    OrchestrationError,
    ProviderNotFoundError,
    SessionLaunchError,
    TransportUnavailableError,
)
from .events import SessionEventSink
from .log_store import LogStore
from .orchestrator import Orchestrator
from .registry import SessionRegistry

__all__ = [
    # Orchestrator
    "Orchestrator",
    "SessionRegistry",
    "LogStore",
    "OutputDemultiplexer",
    "SessionEventSink",
    # Models
    "LaunchSpec",
    "LogTail",
    "OutputKind",
    "OutputRecord",
    "SessionHandle",
    "SessionKey",
    "SessionRequest",
    "SessionState",
    "SessionStatus",
    "TerminalKind",
    "TerminalMarker",
    # Config
    "EngineConfig",
    # Errors
    "InvalidSessionRequestError",
    "OrchestrationError",
    "ProviderNotFoundError",
    "SessionLaunchError",
    "TransportUnavailableError",
]

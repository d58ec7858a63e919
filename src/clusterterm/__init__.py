"""clusterterm: open terminals to many hosts at once and type into all of them."""

from .config import Config, Settings, SymbolTable, load_config
from .expander import LaunchTarget, expand
from .hosts import HostSpec, parse_host
from .orchestrator import Orchestrator, Session, SessionState
from .resolver import Resolver
from .transport import Transport

__all__ = [
    "Config",
    "Settings",
    "SymbolTable",
    "load_config",
    "LaunchTarget",
    "expand",
    "HostSpec",
    "parse_host",
    "Orchestrator",
    "Session",
    "SessionState",
    "Resolver",
    "Transport",
]

"""autorefresh — reload browser pages when a development server restarts."""
from .agent import ReloadAgent, transition
from .config import AutorefreshConfig, load_yaml_config
from .errors import AutorefreshError, InvalidParametersError, TemplateParsingError
from .models import AgentEffect, AgentEvent, AgentPhase, AgentState
from .reloader import PageReloader, create
from .server import DevServer, inject_middleware, setup_autorefresh

__all__ = [
    # Construction
    "create",
    "PageReloader",
    "setup_autorefresh",
    "inject_middleware",
    "DevServer",
    # Agent
    "ReloadAgent",
    "transition",
    "AgentEffect",
    "AgentEvent",
    "AgentPhase",
    "AgentState",
    # Config
    "AutorefreshConfig",
    "load_yaml_config",
    # Errors
    "AutorefreshError",
    "InvalidParametersError",
    "TemplateParsingError",
]

"""
Module handlers. Every ModuleName maps to exactly one handler class.
"""

# Standard
from typing import Dict, Type

# Local
from ..registry import ModuleName
from .app_mobility import ApplicationMobilityHandler
from .authorization import AuthorizationHandler
from .authorization_server import AuthorizationServerHandler
from .base import DriverWorkloads, ModuleContext, ModuleHandler, ReconcileOptions
from .observability import ObservabilityHandler
from .replication import ReplicationHandler
from .resiliency import ResiliencyHandler
from .reverse_proxy import ReverseProxyHandler

HANDLERS: Dict[ModuleName, Type[ModuleHandler]] = {
    handler.module_name: handler
    for handler in [
        AuthorizationHandler,
        AuthorizationServerHandler,
        ReplicationHandler,
        ResiliencyHandler,
        ObservabilityHandler,
        ReverseProxyHandler,
        ApplicationMobilityHandler,
    ]
}

assert set(HANDLERS) == set(ModuleName), "Every module must have a handler"


def get_handler(module_name: ModuleName, context: ModuleContext) -> ModuleHandler:
    """Construct the handler for a module"""
    return HANDLERS[module_name](context)

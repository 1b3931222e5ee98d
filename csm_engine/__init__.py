"""
Package exports
"""

# Local
from . import config
from .custom_resource import CustomResource
from .deploy_manager import DeployManagerBase, DryRunDeployManager
from .engine import EngineResult, ModuleEngine, ModuleResult
from .exceptions import (
    assert_cluster,
    assert_config,
    assert_inject,
    assert_render,
)
from .managed_object import ManagedObject
from .modules import DriverWorkloads, ReconcileOptions
from .registry import DriverType, ModuleName

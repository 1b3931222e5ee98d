"""
Shared precheck gate. Each module handler runs the same three steps: driver
support, version support and presence of required secrets/config maps in the
custom resource's namespace.
"""

# Standard
from typing import Iterable, Optional

# First Party
import alog

# Local
from .deploy_manager import DeployManagerBase
from .exceptions import MissingPrerequisiteError, UnsupportedDriverError
from .registry import DriverType, ModuleName, SupportedDriverParam, supports
from .versions import check_version

log = alog.use_channel("PRCHK")


class PrecheckValidator:
    """Runs the shared precheck steps for one module"""

    def __init__(
        self,
        module_name: ModuleName,
        deploy_manager: DeployManagerBase,
        config_root: str,
    ):
        """
        Args:
            module_name:  ModuleName
                The module being checked
            deploy_manager:  DeployManagerBase
                Used to look up required secrets and config maps
            config_root:  str
                Root of the template store
        """
        self.module_name = module_name
        self.deploy_manager = deploy_manager
        self.config_root = config_root

    def check_driver(self, driver_type: DriverType) -> SupportedDriverParam:
        """Make sure the module supports the driver

        Raises:
            UnsupportedDriverError: if the module does not support the driver
        """
        driver_param = supports(self.module_name, driver_type)
        if driver_param is None:
            log.warning(
                "%s does not support driver %s",
                self.module_name.value,
                driver_type.value,
            )
            raise UnsupportedDriverError(self.module_name.value, driver_type.value)
        return driver_param

    def check_version(self, version: Optional[str]):
        """Make sure a requested version is shipped. An empty version is
        resolved to a default at render time and is not checked here.
        """
        if version:
            check_version(self.module_name, version, self.config_root)

    def require_resources(
        self,
        names: Iterable[str],
        namespace: str,
        kind: str = "Secret",
    ):
        """Make sure each named resource exists in the namespace. A lookup that
        fails outright is logged and skipped so that a transient API failure
        does not block the module.

        Raises:
            MissingPrerequisiteError: naming the first missing resource
        """
        for name in names:
            success, content = self.deploy_manager.get_object_current_state(
                kind=kind, name=name, namespace=namespace, api_version="v1"
            )
            if not success:
                log.warning(
                    "Failed to query for %s %s/%s; continuing",
                    kind,
                    namespace,
                    name,
                )
                continue
            if content is None:
                log.info(
                    "%s precheck failed: missing %s %s/%s",
                    self.module_name.value,
                    kind,
                    namespace,
                    name,
                )
                raise MissingPrerequisiteError(resource_name=name, resource_kind=kind)
            log.debug3("Found required %s %s/%s", kind, namespace, name)

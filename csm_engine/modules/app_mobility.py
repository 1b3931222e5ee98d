"""
Application mobility. Renders the controller manager that backs up and moves
applications between clusters. It is licensed, so the license and its
initialization vector secret must exist before install.
"""

# Standard
from typing import List

# First Party
import alog

# Local
from ..managed_object import ManagedObject
from ..registry import ModuleName
from ..render import Token, resolve_tokens
from .base import ModuleHandler, ReconcileOptions

log = alog.use_channel("APMOB")

CONTROLLER_COMPONENT = "application-mobility-controller-manager"
CONTROLLER_ARTIFACT = "controller.yaml"
LICENSE_ENV = "LICENSE_NAME"
DEFAULT_LICENSE = "dls-license"
IV_SECRET = "iv"

CONTROLLER_TOKENS = [
    Token.env("APPLICATION_MOBILITY_REPLICA_COUNT", "1"),
    Token.env("APPLICATION_MOBILITY_LOG_LEVEL", "info"),
    Token.env(LICENSE_ENV, DEFAULT_LICENSE),
]


class ApplicationMobilityHandler(ModuleHandler):
    """Handler for application mobility"""

    module_name = ModuleName.APPLICATION_MOBILITY

    def check_prerequisites(self):
        self.validator.require_resources(
            [self.license_name(), IV_SECRET], self.cr.namespace
        )

    def render(
        self,
        options: ReconcileOptions,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        version_spec = self.version_spec()
        controller = self.get_component(CONTROLLER_COMPONENT) or self.component
        subs = self.substitutions()
        subs.extend(resolve_tokens(CONTROLLER_TOKENS, controller))
        subs.add(
            "<APPLICATION_MOBILITY_IMAGE>",
            self.image(controller, version_spec, CONTROLLER_COMPONENT),
        )
        objects = self.renderer.render_objects(version_spec, CONTROLLER_ARTIFACT, subs)
        log.debug2("Rendered %d application mobility objects", len(objects))
        return objects

    def license_name(self) -> str:
        controller = self.get_component(CONTROLLER_COMPONENT) or self.component
        return controller.get_env(LICENSE_ENV) or DEFAULT_LICENSE

"""
Base types shared by every module handler. Each module is one ModuleHandler
subclass implementing the precheck/render/inject capability for a single
ModuleName.
"""

# Standard
from dataclasses import dataclass
from typing import List, Optional
import abc

# First Party
import alog

# Local
from ..custom_resource import Component, CustomResource, Module
from ..deploy_manager import DeployManagerBase
from ..managed_object import ManagedObject
from ..precheck import PrecheckValidator
from ..registry import ModuleName, SupportedDriverParam, supports
from ..render import ModuleRenderer, Substitutions, common_substitutions
from ..versions import VersionSpec, resolve

log = alog.use_channel("MODUL")


@dataclass(frozen=True)
class ReconcileOptions:
    """Per-pass settings derived during precheck and read by render and
    inject. Handlers return an updated copy instead of mutating shared state.
    """

    deploy_reverse_proxy_as_sidecar: bool = True


@dataclass
class DriverWorkloads:
    """The driver's already-rendered manifests that modules inject into"""

    controller: Optional[dict] = None
    node: Optional[dict] = None
    cluster_role: Optional[dict] = None


@dataclass
class ModuleContext:
    """Everything a handler needs for one pass over one custom resource"""

    cr: CustomResource
    config_root: str
    deploy_manager: DeployManagerBase
    module_renderer: ModuleRenderer


class ModuleHandler(abc.ABC):
    """Capability interface implemented once per module"""

    # The module this handler implements. Set by every subclass.
    module_name: ModuleName = None

    # Whether the module only works with the drivers listed in the registry
    requires_driver_support: bool = True

    def __init__(self, context: ModuleContext):
        """
        Args:
            context:  ModuleContext
                The custom resource and collaborators for this pass
        """
        assert self.module_name is not None, "Handler has no module_name"
        self.context = context
        self.cr = context.cr
        self.module = context.cr.module_or_synthetic(self.module_name)
        self.renderer = context.module_renderer
        self.validator = PrecheckValidator(
            self.module_name, context.deploy_manager, context.config_root
        )

    ## Interface ###############################################################

    def precheck(self, options: ReconcileOptions) -> ReconcileOptions:
        """Gate the module on driver support, version support and the presence
        of required resources

        Args:
            options:  ReconcileOptions
                The options accumulated so far in this pass

        Returns:
            options:  ReconcileOptions
                The options, updated with anything this module derives

        Raises:
            UnsupportedDriverError, UnsupportedVersionError, TemplateIOError,
            MissingPrerequisiteError, ConfigError
        """
        if self.requires_driver_support:
            self.validator.check_driver(self.cr.driver_type)
        self.validator.check_version(self.module.config_version)
        self.check_prerequisites()
        log.info("Performed pre-checks for %s", self.module_name.value)
        return self.update_options(options)

    @abc.abstractmethod
    def render(
        self,
        options: ReconcileOptions,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        """Render the standalone objects this module owns, in apply order"""

    def inject(self, workloads: DriverWorkloads, options: ReconcileOptions):
        """Inject sidecars, volumes and env vars into the driver workloads"""

    ## Hooks ###################################################################

    def check_prerequisites(self):
        """Module-specific presence checks run after the shared ones"""

    def update_options(self, options: ReconcileOptions) -> ReconcileOptions:
        """Derive any pass options owned by this module"""
        return options

    ## Shared helpers ##########################################################

    @property
    def component(self) -> Component:
        """The module's first component, or an empty one"""
        return self.module.first_component() or Component(name="")

    def get_component(self, name: str) -> Optional[Component]:
        return self.module.get_component(name)

    def component_enabled(self, name: str) -> bool:
        """Whether a component is explicitly enabled on this module"""
        comp = self.module.get_component(name)
        return comp is not None and comp.enabled is True

    def driver_param(self) -> Optional[SupportedDriverParam]:
        return supports(self.module_name, self.cr.driver_type)

    def version_spec(self) -> VersionSpec:
        """Resolve the module's effective version. Never cached."""
        return resolve(
            self.module_name,
            self.module.config_version,
            self.cr.driver.config_version,
            self.cr.driver_type,
            self.context.config_root,
        )

    def substitutions(self) -> Substitutions:
        """The common substitutions plus the driver's plugin identifier when
        the module supports the driver
        """
        subs = common_substitutions(self.cr)
        driver_param = self.driver_param()
        if driver_param is not None:
            subs.add("<DriverPluginIdentifier>", driver_param.plugin_identifier)
        return subs

    @staticmethod
    def image(
        component: Optional[Component],
        version_spec: VersionSpec,
        image_key: str,
        default: str = "",
    ) -> str:
        """Pick an image: the component override, then the version's shipped
        image map, then the given default
        """
        if component is not None and component.image:
            return component.image
        return version_spec.images.get(image_key, default)

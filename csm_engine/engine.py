"""
The ModuleEngine runs one pass over a ContainerStorageModule custom resource:
precheck each enabled module, inject sidecars into the driver workloads, and
apply or delete each module's standalone objects. Modules are processed in the
order the custom resource lists them and a failure in one module never stops
the others.
"""

# Standard
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union
import copy
import logging
import uuid

# First Party
import alog

# Local
from . import config
from .custom_resource import CustomResource
from .deploy_manager import DeployManagerBase
from .exceptions import CSMError
from .log_format import CSMJsonFormatter
from .managed_object import ManagedObject
from .modules import (
    DriverWorkloads,
    ModuleContext,
    ModuleHandler,
    ReconcileOptions,
    get_handler,
)
from .reconcile import reconcile_objects
from .registry import ModuleName
from .render import FileTemplateStore, ModuleRenderer, TemplateRenderer, TemplateStore

log = alog.use_channel("ENGIN")


## Data models #################################################################


@dataclass
class ModuleResult:
    """The outcome of one module in one pass"""

    module: ModuleName
    # Whether any object in the cluster changed
    changed: bool = False
    # The objects rendered for the module, in apply order
    objects: List[ManagedObject] = field(default_factory=list)
    # The error that stopped the module, if any
    error: Optional[CSMError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class EngineResult:
    """The outcome of one pass over every enabled module"""

    modules: List[ModuleResult] = field(default_factory=list)
    options: ReconcileOptions = field(default_factory=ReconcileOptions)
    # The injected copies of the driver workloads for inject passes
    workloads: Optional[DriverWorkloads] = None

    @property
    def failed(self) -> List[ModuleResult]:
        return [result for result in self.modules if not result.succeeded]

    @property
    def succeeded(self) -> List[ModuleResult]:
        return [result for result in self.modules if result.succeeded]

    @property
    def errors(self) -> List[CSMError]:
        return [result.error for result in self.failed]

    @property
    def changed(self) -> bool:
        return any(result.changed for result in self.modules)

    def get(self, module: ModuleName) -> Optional[ModuleResult]:
        for result in self.modules:
            if result.module == module:
                return result
        return None

    def raise_first(self):
        """Raise the first recorded module error, if any"""
        if self.failed:
            raise self.failed[0].error


## ModuleEngine ################################################################


class ModuleEngine:
    """Composes the modules of a custom resource against a deploy manager"""

    def __init__(
        self,
        deploy_manager: DeployManagerBase,
        config_root: Optional[str] = None,
        store: Optional[TemplateStore] = None,
        renderer: Optional[TemplateRenderer] = None,
    ):
        """
        Args:
            deploy_manager:  DeployManagerBase
                The cluster capability used for lookups, applies and deletes
            config_root:  Optional[str]
                Root of the template store. Defaults to the library config.
            store:  Optional[TemplateStore]
                Source of template text. Defaults to a file store at
                config_root.
            renderer:  Optional[TemplateRenderer]
                Template engine. Defaults to flat token replacement.
        """
        self.deploy_manager = deploy_manager
        self.config_root = config_root or config.config_directory
        self.module_renderer = ModuleRenderer(
            store or FileTemplateStore(self.config_root), renderer
        )

    ## Passes ##################################################################

    def precheck(self, cr: Union[CustomResource, dict]) -> EngineResult:
        """Run the precheck of every enabled module"""
        cr = self._parse(cr)
        result = EngineResult()
        for module_name, handler in self._handlers(cr):
            module_result = ModuleResult(module_name)
            result.modules.append(module_result)
            try:
                result.options = handler.precheck(result.options)
            except CSMError as err:
                self._record_error(module_result, "precheck", err)
        return result

    def inject(
        self,
        cr: Union[CustomResource, dict],
        workloads: DriverWorkloads,
    ) -> EngineResult:
        """Inject every enabled module into copies of the driver workloads.
        Modules that fail precheck are skipped. The input workloads are never
        modified.

        Args:
            cr:  Union[CustomResource, dict]
                The custom resource
            workloads:  DriverWorkloads
                The driver's rendered controller, node and ClusterRole

        Returns:
            result:  EngineResult
                The per-module results with the injected copies in
                result.workloads
        """
        cr = self._parse(cr)
        result = EngineResult(workloads=copy.deepcopy(workloads))
        for module_name, handler in self._handlers(cr):
            module_result = ModuleResult(module_name)
            result.modules.append(module_result)
            stage = "precheck"
            try:
                result.options = handler.precheck(result.options)
                stage = "inject"
                handler.inject(result.workloads, result.options)
            except CSMError as err:
                self._record_error(module_result, stage, err)
        return result

    def apply(self, cr: Union[CustomResource, dict]) -> EngineResult:
        """Precheck, render and apply every enabled module"""
        return self._reconcile(cr, is_deleting=False)

    def delete(self, cr: Union[CustomResource, dict]) -> EngineResult:
        """Render and delete every enabled module. Prechecks do not gate
        deletion and objects that are already gone count as deleted.
        """
        return self._reconcile(cr, is_deleting=True)

    def render(
        self,
        cr: Union[CustomResource, dict],
        is_deleting: bool = False,
    ) -> EngineResult:
        """Render every enabled module without touching the cluster"""
        cr = self._parse(cr)
        result = EngineResult()
        for module_name, handler in self._handlers(cr):
            module_result = ModuleResult(module_name)
            result.modules.append(module_result)
            try:
                result.options = handler.update_options(result.options)
                module_result.objects = handler.render(result.options, is_deleting)
            except CSMError as err:
                self._record_error(module_result, "render", err)
        return result

    ## Logging #################################################################

    @staticmethod
    def configure_logging(
        cr_manifest: Optional[dict] = None,
        reconciliation_id: Optional[str] = None,
    ) -> str:
        """Configure logging for a pass from the library config. When json
        logging is enabled, records carry the custom resource identity and the
        pass id.

        Returns:
            reconciliation_id:  str
                The id of the pass
        """
        reconciliation_id = reconciliation_id or str(uuid.uuid4())
        handler_generator = None
        if logging.root.handlers:
            old_handler = logging.root.handlers[0]

            def handler_generator():
                return old_handler

        alog.configure(
            default_level=config.log_level,
            filters=config.log_filters,
            formatter=CSMJsonFormatter(cr_manifest, reconciliation_id)
            if config.log_json
            else "pretty",
            thread_id=config.log_thread_id,
            handler_generator=handler_generator,
        )
        return reconciliation_id

    ## Implementation ##########################################################

    def _reconcile(
        self,
        cr: Union[CustomResource, dict],
        is_deleting: bool,
    ) -> EngineResult:
        cr = self._parse(cr)
        result = EngineResult()
        for module_name, handler in self._handlers(cr):
            module_result = ModuleResult(module_name)
            result.modules.append(module_result)
            stage = "precheck"
            try:
                if is_deleting:
                    result.options = handler.update_options(result.options)
                else:
                    result.options = handler.precheck(result.options)
                stage = "render"
                module_result.objects = handler.render(result.options, is_deleting)
                stage = "delete" if is_deleting else "apply"
                module_result.changed = reconcile_objects(
                    module_result.objects, is_deleting, self.deploy_manager
                )
            except CSMError as err:
                self._record_error(module_result, stage, err)
                continue
            log.info(
                "Finished %s of %s with %d objects (changed: %s)",
                stage,
                module_name.value,
                len(module_result.objects),
                module_result.changed,
                extra={"csmModule": module_name.value},
            )
        return result

    def _handlers(
        self,
        cr: CustomResource,
    ) -> Iterator[Tuple[ModuleName, ModuleHandler]]:
        """Yield a handler for each enabled module in custom resource order.
        Only the first entry for a module name counts.
        """
        context = ModuleContext(
            cr=cr,
            config_root=self.config_root,
            deploy_manager=self.deploy_manager,
            module_renderer=self.module_renderer,
        )
        seen = set()
        for module in cr.modules:
            if module.name in seen:
                log.debug("Ignoring duplicate entry for %s", module.name.value)
                continue
            seen.add(module.name)
            if not module.enabled:
                log.debug2("Skipping disabled module %s", module.name.value)
                continue
            yield module.name, get_handler(module.name, context)

    @staticmethod
    def _parse(cr: Union[CustomResource, dict]) -> CustomResource:
        if isinstance(cr, CustomResource):
            return cr
        return CustomResource.from_manifest(cr)

    @staticmethod
    def _record_error(module_result: ModuleResult, stage: str, err: CSMError):
        module_result.error = err
        log_fn = log.error if err.is_fatal_error else log.warning
        log_fn(
            "Module %s failed during %s: %s",
            module_result.module.value,
            stage,
            err,
            extra={"csmModule": module_result.module.value},
        )

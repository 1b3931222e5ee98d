"""
Typed view of the ContainerStorageModule custom resource. The engine only ever
reads the custom resource; every type here is built fresh from the manifest
dict on each pass.
"""

# Standard
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# First Party
import alog

# Local
from .exceptions import ConfigError, assert_config
from .registry import DriverType, ModuleName

log = alog.use_channel("CSMCR")


@dataclass
class EnvVar:
    name: str
    value: str = ""

    @classmethod
    def from_dict(cls, env: dict) -> "EnvVar":
        value = env.get("value")
        return cls(name=env.get("name", ""), value="" if value is None else str(value))


@dataclass
class Component:
    """A named sub-unit of a module. The env list is the substitution source for
    the module's template tokens.
    """

    name: str
    enabled: Optional[bool] = None
    image: str = ""
    image_pull_policy: str = ""
    envs: List[EnvVar] = field(default_factory=list)
    args: List[str] = field(default_factory=list)
    certificate: str = ""
    private_key: str = ""
    hostname: str = ""
    redis_storage_class: str = ""
    proxy_server_ingress: List[dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, component: dict) -> "Component":
        return cls(
            name=component.get("name", ""),
            enabled=component.get("enabled"),
            image=component.get("image") or "",
            image_pull_policy=component.get("imagePullPolicy") or "",
            envs=[EnvVar.from_dict(env) for env in component.get("envs") or []],
            args=[str(arg) for arg in component.get("args") or []],
            certificate=component.get("certificate") or "",
            private_key=component.get("privateKey") or "",
            hostname=component.get("hostname") or "",
            redis_storage_class=component.get("redisStorageClass") or "",
            proxy_server_ingress=list(component.get("proxyServerIngress") or []),
        )

    def get_env(self, name: str) -> Optional[str]:
        """Get the value of the first env var with the given name"""
        for env in self.envs:
            if env.name == name:
                return env.value
        return None


@dataclass
class Module:
    name: ModuleName
    enabled: bool = False
    config_version: str = ""
    components: List[Component] = field(default_factory=list)

    @classmethod
    def from_dict(cls, module: dict) -> "Module":
        raw_name = module.get("name", "")
        try:
            name = ModuleName(raw_name)
        except ValueError as err:
            raise ConfigError(f"Unknown module name [{raw_name}]") from err
        return cls(
            name=name,
            enabled=bool(module.get("enabled", False)),
            config_version=module.get("configVersion") or "",
            components=[
                Component.from_dict(comp) for comp in module.get("components") or []
            ],
        )

    @classmethod
    def synthetic(cls, name: ModuleName) -> "Module":
        """Stand-in for a module that the custom resource does not list so that
        default versions and default substitutions still apply
        """
        return cls(name=name)

    def get_component(self, name: str) -> Optional[Component]:
        """Get the first component with the given name"""
        for component in self.components:
            if component.name == name:
                return component
        return None

    def first_component(self) -> Optional[Component]:
        return self.components[0] if self.components else None


@dataclass
class Driver:
    csi_driver_type: DriverType
    config_version: str = ""
    common: Component = field(default_factory=lambda: Component(name="common"))
    controller: Optional[Component] = None
    node: Optional[Component] = None
    auth_secret: str = ""
    is_openshift: bool = False

    @classmethod
    def from_dict(cls, driver: dict) -> "Driver":
        raw_type = str(driver.get("csiDriverType", "")).lower()
        try:
            driver_type = DriverType(raw_type)
        except ValueError as err:
            raise ConfigError(f"Unknown csiDriverType [{raw_type}]") from err
        return cls(
            csi_driver_type=driver_type,
            config_version=driver.get("configVersion") or "",
            common=Component.from_dict(
                {"name": "common", **(driver.get("common") or {})}
            ),
            controller=(
                Component.from_dict({"name": "controller", **driver["controller"]})
                if driver.get("controller")
                else None
            ),
            node=(
                Component.from_dict({"name": "node", **driver["node"]})
                if driver.get("node")
                else None
            ),
            auth_secret=driver.get("authSecret") or "",
            is_openshift=bool(driver.get("isOpenShift", False)),
        )


def _parse_modules(raw_modules: List[dict]) -> List[Module]:
    """Parse the spec.modules entries. Entries naming a module this engine
    does not manage are skipped so that the known modules still reconcile.
    """
    modules = []
    for raw_module in raw_modules:
        try:
            modules.append(Module.from_dict(raw_module))
        except ConfigError as err:
            log.warning("Skipping module entry: %s", err)
    return modules


@dataclass
class CustomResource:
    name: str
    namespace: str
    driver: Driver
    modules: List[Module] = field(default_factory=list)
    uid: Optional[str] = None
    manifest: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_manifest(cls, manifest: dict) -> "CustomResource":
        """Parse a ContainerStorageModule manifest dict

        Args:
            manifest:  dict
                The full custom resource manifest

        Returns:
            cr:  CustomResource
                The typed view of the manifest
        """
        metadata = manifest.get("metadata") or {}
        spec = manifest.get("spec") or {}
        assert_config(metadata.get("name"), "Custom resource has no metadata.name")
        assert_config(
            metadata.get("namespace"), "Custom resource has no metadata.namespace"
        )
        assert_config(spec.get("driver"), "Custom resource has no spec.driver")
        modules = _parse_modules(spec.get("modules") or [])
        log.debug3(
            "Parsed custom resource %s/%s with modules %s",
            metadata["namespace"],
            metadata["name"],
            [mod.name.value for mod in modules],
        )
        return cls(
            name=metadata["name"],
            namespace=metadata["namespace"],
            uid=metadata.get("uid"),
            driver=Driver.from_dict(spec["driver"]),
            modules=modules,
            manifest=manifest,
        )

    @property
    def driver_type(self) -> DriverType:
        return self.driver.csi_driver_type

    def get_module(self, name: ModuleName) -> Optional[Module]:
        """Get the first module entry with the given name. Later duplicates are
        ignored.
        """
        for module in self.modules:
            if module.name == name:
                return module
        return None

    def module_or_synthetic(self, name: ModuleName) -> Module:
        """Get the module entry or a synthetic empty one when it is absent"""
        module = self.get_module(name)
        if module is None:
            log.debug2("Module %s absent; using synthetic entry", name.value)
            return Module.synthetic(name)
        return module

    def is_module_enabled(self, name: ModuleName) -> bool:
        module = self.get_module(name)
        return module is not None and module.enabled

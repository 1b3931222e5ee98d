"""
CSI reverse proxy for PowerMax. The proxy runs either as a sidecar in the
driver controller, fronted by a service for the node pods, or as its own
Deployment that the driver reaches by service name.
"""

# Standard
from typing import List
import dataclasses

# First Party
import alog

# Local
from .. import constants
from ..custom_resource import Component
from ..exceptions import ConfigError
from ..inject import (
    append_container,
    append_volumes,
    find_container,
    get_pod_spec,
    inject_driver_env,
    update_container_from_components,
)
from ..managed_object import ManagedObject
from ..registry import ModuleName
from ..render import Substitutions, Token, resolve_tokens
from ..utils import find_named, parse_bool
from ..versions import VersionSpec, min_version_check
from .base import DriverWorkloads, ModuleHandler, ReconcileOptions

log = alog.use_channel("RVPRX")

PROXY_COMPONENT = "csipowermax-reverseproxy"
PROXY_SERVICE_NAME = "csipowermax-reverseproxy"
SIDECAR_CONTAINER_NAME = "reverseproxy"

DEPLOYMENT_ARTIFACT = "controller.yaml"
SIDECAR_ARTIFACT = "container.yaml"
SERVICE_ARTIFACT = "service.yaml"

TLS_SECRET_ENV = "X_CSI_REVPROXY_TLS_SECRET"
CONFIG_MAP_ENV = "X_CSI_CONFIG_MAP_NAME"
PORT_ENV = "X_CSI_REVPROXY_PORT"
USE_SECRET_ENV = "X_CSI_REVPROXY_USE_SECRET"
DEPLOY_AS_SIDECAR_ENV = "DeployAsSidecar"

SIDECAR_PORT_DRIVER_ENV = "X_CSI_POWERMAX_SIDECAR_PROXY_PORT"
SERVICE_NAME_DRIVER_ENV = "X_CSI_POWERMAX_PROXY_SERVICE_NAME"
SECRET_FILE_PATH_ENV = "X_CSI_REVPROXY_SECRET_FILEPATH"

CONFIG_MAP_VOLUME = "configmap-volume"
CONFIG_MAP_MOUNT_PATH = "/etc/config/configmap"
TLS_SECRET_VOLUME = "tls-secret"
SECRET_MOUNT_DIR = "/etc/powermax"
SECRET_FILE_NAME = "powermax-config"

# Mounting the array config from a secret or config map is a v2.13.0 feature
SECRET_MOUNT_MIN_VERSION = "v2.13.0"

# Before v2.12.0 the sidecar also mounted the TLS secret as a volume
TLS_VOLUME_MAX_VERSION = "v2.12.0"

PROXY_TOKENS = [
    Token.env(TLS_SECRET_ENV, "csirevproxy-tls-secret"),
    Token.env(CONFIG_MAP_ENV, "powermax-reverseproxy-config"),
    Token.env(PORT_ENV, "2222"),
    Token.env(USE_SECRET_ENV, "false"),
]


class ReverseProxyHandler(ModuleHandler):
    """Handler for the PowerMax CSI reverse proxy"""

    module_name = ModuleName.REVERSE_PROXY

    def check_prerequisites(self):
        tokens = self.tokens()
        self.validator.require_resources(
            [tokens.get(f"<{TLS_SECRET_ENV}>")], self.cr.namespace
        )
        if not self.use_secret():
            log.info(
                "Using reverse proxy config map %s",
                tokens.get(f"<{CONFIG_MAP_ENV}>"),
            )
            self.validator.require_resources(
                [tokens.get(f"<{CONFIG_MAP_ENV}>")],
                self.cr.namespace,
                kind="ConfigMap",
            )

    def update_options(self, options: ReconcileOptions) -> ReconcileOptions:
        """Read the sidecar/standalone choice from the DeployAsSidecar env. A
        value that is not a boolean leaves the default in place.
        """
        as_sidecar = True
        value = self.proxy_component.get_env(DEPLOY_AS_SIDECAR_ENV)
        if value is not None:
            try:
                as_sidecar = parse_bool(value, DEPLOY_AS_SIDECAR_ENV)
            except ConfigError:
                log.warning(
                    "Invalid %s value [%s]; deploying as sidecar",
                    DEPLOY_AS_SIDECAR_ENV,
                    value,
                )
        log.debug2("Reverse proxy deployed as sidecar: %s", as_sidecar)
        return dataclasses.replace(options, deploy_reverse_proxy_as_sidecar=as_sidecar)

    def render(
        self,
        options: ReconcileOptions,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        version_spec = self.version_spec()
        subs = self.substitutions()
        subs.extend(self.tokens())
        if options.deploy_reverse_proxy_as_sidecar:
            return self.renderer.render_objects(version_spec, SERVICE_ARTIFACT, subs)

        subs.add(
            "<REVERSEPROXY_PROXY_SERVER_IMAGE>",
            self.image(self.proxy_component, version_spec, PROXY_COMPONENT),
        )
        objects = self.renderer.render_objects(version_spec, DEPLOYMENT_ARTIFACT, subs)
        if min_version_check(SECRET_MOUNT_MIN_VERSION, version_spec.version):
            for obj in objects:
                if obj.kind == "Deployment" and obj.name == PROXY_SERVICE_NAME:
                    self._mount_standalone_config(obj.definition, subs)
        return objects

    def inject(self, workloads: DriverWorkloads, options: ReconcileOptions):
        if workloads.controller is None:
            return
        if not options.deploy_reverse_proxy_as_sidecar:
            inject_driver_env(
                workloads.controller,
                [{"name": SERVICE_NAME_DRIVER_ENV, "value": PROXY_SERVICE_NAME}],
            )
            return
        self.inject_sidecar(workloads.controller)

    ## Public helpers ##########################################################

    @property
    def proxy_component(self) -> Component:
        return self.get_component(PROXY_COMPONENT) or Component(name=PROXY_COMPONENT)

    def tokens(self) -> Substitutions:
        return resolve_tokens(PROXY_TOKENS, self.proxy_component)

    def use_secret(self) -> bool:
        """The array config comes from the driver's auth secret rather than the
        proxy config map only when the env is exactly "true"
        """
        return self.tokens().get(f"<{USE_SECRET_ENV}>") == "true"

    def inject_sidecar(self, controller: dict):
        """Inject the proxy container, the driver port env and the config
        volumes into the driver controller
        """
        version_spec = self.version_spec()
        subs = self.substitutions()
        subs.extend(self.tokens())
        container = self.renderer.render_container(
            version_spec, SIDECAR_ARTIFACT, subs
        )
        if self.proxy_component.image:
            container["image"] = self.proxy_component.image
        update_container_from_components(self.module.components, container)
        append_container(controller, container)
        inject_driver_env(
            controller,
            [{"name": SIDECAR_PORT_DRIVER_ENV, "value": subs.get(f"<{PORT_ENV}>")}],
        )

        mount_supported = min_version_check(
            SECRET_MOUNT_MIN_VERSION, version_spec.version
        )
        if self.use_secret():
            if mount_supported:
                self._mount_driver_secret(controller)
        else:
            self._mount_sidecar_config_map(
                controller, version_spec, subs, mount_supported
            )

    ## Implementation ##########################################################

    def _auth_secret(self) -> str:
        return self.cr.driver.auth_secret or f"{self.cr.name}-creds"

    def _mount_driver_secret(self, controller: dict):
        secret_name = self._auth_secret()
        append_volumes(
            controller,
            [
                {
                    "name": secret_name,
                    "secret": {"secretName": secret_name, "optional": False},
                }
            ],
        )
        driver = find_container(controller, constants.DRIVER_CONTAINER_NAME)
        if driver is not None:
            driver.setdefault("volumeMounts", []).append(
                {"name": secret_name, "mountPath": f"{SECRET_MOUNT_DIR}/{secret_name}"}
            )
        log.debug2("Mounted secret %s into the driver container", secret_name)

    def _mount_sidecar_config_map(
        self,
        controller: dict,
        version_spec: VersionSpec,
        subs: Substitutions,
        mount_supported: bool,
    ):
        volumes = [_config_map_volume(subs.get(f"<{CONFIG_MAP_ENV}>"))]
        if not min_version_check(TLS_VOLUME_MAX_VERSION, version_spec.version):
            volumes.append(
                {
                    "name": TLS_SECRET_VOLUME,
                    "secret": {"secretName": subs.get(f"<{TLS_SECRET_ENV}>")},
                }
            )
        append_volumes(controller, volumes)

        # Older sidecar templates mount the config map themselves
        if not mount_supported:
            return
        for container in get_pod_spec(controller)["containers"]:
            if container.get("name") == SIDECAR_CONTAINER_NAME:
                container.setdefault("volumeMounts", []).append(
                    {"name": CONFIG_MAP_VOLUME, "mountPath": CONFIG_MAP_MOUNT_PATH}
                )

    def _mount_standalone_config(self, deployment: dict, subs: Substitutions):
        pod_spec = get_pod_spec(deployment)
        volumes = pod_spec.get("volumes")
        if volumes is None:
            volumes = pod_spec["volumes"] = []
        proxy = find_named(pod_spec["containers"], PROXY_SERVICE_NAME)

        if self.use_secret():
            secret_name = self._auth_secret()
            volumes.append(
                {
                    "name": secret_name,
                    "secret": {"secretName": secret_name, "optional": False},
                }
            )
            if proxy is not None:
                proxy.setdefault("volumeMounts", []).append(
                    {"name": secret_name, "mountPath": SECRET_MOUNT_DIR}
                )
                proxy.setdefault("env", []).extend(
                    [
                        {
                            "name": SECRET_FILE_PATH_ENV,
                            "value": f"{SECRET_MOUNT_DIR}/{SECRET_FILE_NAME}",
                        },
                        {"name": USE_SECRET_ENV, "value": "true"},
                    ]
                )
            return

        if find_named(volumes, CONFIG_MAP_VOLUME) is None:
            volumes.append(_config_map_volume(subs.get(f"<{CONFIG_MAP_ENV}>")))
        if proxy is not None:
            mounts = proxy.setdefault("volumeMounts", [])
            if find_named(mounts, CONFIG_MAP_VOLUME) is None:
                mounts.append(
                    {"name": CONFIG_MAP_VOLUME, "mountPath": CONFIG_MAP_MOUNT_PATH}
                )


def _config_map_volume(config_map_name: str) -> dict:
    return {
        "name": CONFIG_MAP_VOLUME,
        "configMap": {"name": config_map_name, "optional": True},
    }

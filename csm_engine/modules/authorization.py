"""
Authorization sidecar. The karavi-authorization-proxy container is injected
into the driver controller and node workloads (and into observability metrics
deployments) so that the driver talks to the array through the proxy server.
"""

# Standard
from typing import List, Optional

# First Party
import alog

# Local
from .. import constants
from ..custom_resource import Component
from ..exceptions import assert_config
from ..inject import (
    append_container,
    append_volumes,
    remove_by_name,
    rename_volume_mount,
    replace_all_envs,
    stamp_annotation,
    update_container_from_components,
)
from ..managed_object import ManagedObject
from ..registry import ModuleName
from ..render import Token, resolve_tokens
from ..utils import parse_bool
from .base import DriverWorkloads, ModuleHandler, ReconcileOptions

log = alog.use_channel("AUTHZ")

SIDECAR_COMPONENT = "karavi-authorization-proxy"
CONTAINER_ARTIFACT = "container.yaml"
VOLUMES_ARTIFACT = "volumes.yaml"
ROOT_CERTIFICATE = "proxy-server-root-certificate"
SKIP_CERT_ENV_NAMES = ["SKIP_CERTIFICATE_VALIDATION", "INSECURE"]
REQUIRED_SECRETS = ["karavi-authorization-config", "proxy-authz-tokens"]
DRIVER_CONFIG_PARAMS_PLACEHOLDER = "<DriverConfigParamsVolumeMount>"


def skip_certificate_validation(component: Optional[Component]) -> bool:
    """Read the skip flag from SKIP_CERTIFICATE_VALIDATION or INSECURE. The
    last of them in the env list wins.

    Raises:
        ConfigError: if the value is not a boolean
    """
    skip = False
    for env in component.envs if component is not None else []:
        if env.name in SKIP_CERT_ENV_NAMES:
            skip = parse_bool(env.value, env.name)
    return skip


class AuthorizationHandler(ModuleHandler):
    """Handler for the authorization sidecar"""

    module_name = ModuleName.AUTHORIZATION

    def check_prerequisites(self):
        component = self.component
        proxy_host = component.get_env("PROXY_HOST")
        assert_config(
            proxy_host is None or proxy_host != "",
            "PROXY_HOST for authorization is empty",
        )
        secrets = list(REQUIRED_SECRETS)
        if not skip_certificate_validation(component):
            secrets.append(ROOT_CERTIFICATE)
        self.validator.require_resources(secrets, self.cr.namespace)

    def render(
        self,
        options: ReconcileOptions,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        # The sidecar has no standalone objects
        return []

    def inject(self, workloads: DriverWorkloads, options: ReconcileOptions):
        for workload in [workloads.controller, workloads.node]:
            if workload is not None:
                self.inject_into(workload)

    ## Public helpers ##########################################################

    def inject_into(self, workload: dict):
        """Inject the sidecar, its volumes and the marker annotation into any
        workload with a pod template
        """
        version_spec = self.version_spec()
        component = self.component
        skip = skip_certificate_validation(component)
        container = self._render_container(version_spec, component, skip)
        volumes = self.renderer.render_volumes(
            version_spec, VOLUMES_ARTIFACT, self.substitutions()
        )
        if skip:
            remove_by_name(volumes, ROOT_CERTIFICATE)

        append_container(workload, container)
        append_volumes(workload, volumes)
        stamp_annotation(workload, constants.AUTHORIZATION_INJECTED_ANNOTATION)
        log.debug(
            "Injected authorization %s into %s",
            version_spec.version,
            workload.get("metadata", {}).get("name"),
        )

    ## Implementation ##########################################################

    def _render_container(self, version_spec, component, skip: bool) -> dict:
        subs = self.substitutions()
        subs.extend(
            resolve_tokens(
                [
                    Token.env("PROXY_HOST"),
                    Token.env("SKIP_CERTIFICATE_VALIDATION", "false"),
                    Token.env("INSECURE", "false"),
                ],
                component,
            )
        )
        subs.add(
            "<AUTHORIZATION_SIDECAR_IMAGE>",
            self.image(component, version_spec, SIDECAR_COMPONENT),
        )
        container = self.renderer.render_container(
            version_spec, CONTAINER_ARTIFACT, subs
        )
        container["env"] = replace_all_envs(container.get("env"), component.envs)

        mounts = container.get("volumeMounts")
        if skip:
            remove_by_name(mounts, ROOT_CERTIFICATE)
        else:
            for env in container.get("env") or []:
                if env.get("name") in SKIP_CERT_ENV_NAMES and "valueFrom" not in env:
                    env["value"] = "false"

        driver_param = self.driver_param()
        if driver_param is not None:
            rename_volume_mount(
                container,
                DRIVER_CONFIG_PARAMS_PLACEHOLDER,
                driver_param.config_params_volume_mount,
            )
        update_container_from_components(self.module.components, container)
        return container

"""
Observability. Renders the topology service, the OpenTelemetry collector and
the metrics exporter for the custom resource's driver into the observability
namespace. Metrics exporters read the driver credentials, so the driver and
authorization secrets are copied into that namespace as well.
"""

# Standard
from typing import Dict, List, Optional
import dataclasses

# Third Party
import yaml

# First Party
import alog

# Local
from .. import config
from ..custom_resource import Component
from ..exceptions import (
    MissingPrerequisiteError,
    TemplateIOError,
    assert_cluster,
    assert_config,
    assert_render,
)
from ..inject import get_pod_spec
from ..managed_object import ManagedObject
from ..registry import DriverType, ModuleName, canonical_driver_type
from ..render import Token, resolve_tokens
from .authorization import (
    REQUIRED_SECRETS as AUTH_SECRETS,
    ROOT_CERTIFICATE,
    SIDECAR_COMPONENT as AUTH_SIDECAR_COMPONENT,
    AuthorizationHandler,
    skip_certificate_validation,
)
from .base import ModuleHandler, ReconcileOptions
from .cert_manager import CERT_MANAGER_COMPONENT, render_cert_manager

log = alog.use_channel("OBSRV")

TOPOLOGY_COMPONENT = "topology"
OTEL_COLLECTOR_COMPONENT = "otel-collector"
METRICS_COMPONENT_PREFIX = "metrics-"

DEFAULT_COMPONENTS_FILE = "default-components.yaml"
SELF_SIGNED_CERT_FILE = "selfsigned-cert.yaml"
CUSTOM_CERT_FILE = "custom-cert.yaml"
DRIVER_TYPE_PLACEHOLDER = "<CSI_DRIVER_TYPE>"

# Components that serve TLS and get a certificate, and their secret prefix
CERT_SECRET_PREFIXES = {
    OTEL_COLLECTOR_COMPONENT: "otel-collector",
    TOPOLOGY_COMPONENT: "karavi-topology",
}

TOKEN_ENVS = ["ACCESS_TOKEN", "REFRESH_TOKEN"]


@dataclasses.dataclass(frozen=True)
class ObservabilityComponent:
    """How one observability component is rendered"""

    artifact: str
    image_placeholder: str
    tokens: List[Token]
    default_image: str = ""


COMPONENTS: Dict[str, ObservabilityComponent] = {
    TOPOLOGY_COMPONENT: ObservabilityComponent(
        artifact="karavi-topology.yaml",
        image_placeholder="<TOPOLOGY_IMAGE>",
        tokens=[Token.env("TOPOLOGY_LOG_LEVEL", "INFO")],
    ),
    OTEL_COLLECTOR_COMPONENT: ObservabilityComponent(
        artifact="karavi-otel-collector.yaml",
        image_placeholder="<OTEL_COLLECTOR_IMAGE>",
        tokens=[Token.env("NGINX_PROXY_IMAGE", "nginxinc/nginx-unprivileged:1.20")],
        default_image="otel/opentelemetry-collector:0.42.0",
    ),
    "metrics-powerscale": ObservabilityComponent(
        artifact="karavi-metrics-powerscale.yaml",
        image_placeholder="<POWERSCALE_OBS_IMAGE>",
        tokens=[
            Token.env("POWERSCALE_MAX_CONCURRENT_QUERIES", "10"),
            Token.env("POWERSCALE_CAPACITY_METRICS_ENABLED", "true"),
            Token.env("POWERSCALE_PERFORMANCE_METRICS_ENABLED", "true"),
            Token.env("POWERSCALE_CLUSTER_CAPACITY_POLL_FREQUENCY", "30"),
            Token.env("POWERSCALE_CLUSTER_PERFORMANCE_POLL_FREQUENCY", "20"),
            Token.env("POWERSCALE_QUOTA_CAPACITY_POLL_FREQUENCY", "30"),
            Token.env("ISICLIENT_INSECURE", "true"),
            Token.env("ISICLIENT_AUTH_TYPE", "1"),
            Token.env("ISICLIENT_VERBOSE", "0"),
            Token.env("POWERSCALE_LOG_LEVEL", "INFO"),
            Token.env("POWERSCALE_LOG_FORMAT", "TEXT"),
            Token.env("COLLECTOR_ADDRESS", "otel-collector:55680"),
        ],
    ),
    "metrics-powerflex": ObservabilityComponent(
        artifact="karavi-metrics-powerflex.yaml",
        image_placeholder="<POWERFLEX_OBS_IMAGE>",
        tokens=[
            Token.env("POWERFLEX_SDC_METRICS_ENABLED", "true"),
            Token.env("POWERFLEX_VOLUME_METRICS_ENABLED", "true"),
            Token.env("POWERFLEX_STORAGE_POOL_METRICS_ENABLED", "true"),
            Token.env("POWERFLEX_SDC_IO_POLL_FREQUENCY", "10"),
            Token.env("POWERFLEX_VOLUME_IO_POLL_FREQUENCY", "10"),
            Token.env("POWERFLEX_STORAGE_POOL_POLL_FREQUENCY", "10"),
            Token.env("POWERFLEX_MAX_CONCURRENT_QUERIES", "10"),
            Token.env("POWERFLEX_LOG_LEVEL", "INFO"),
            Token.env("POWERFLEX_LOG_FORMAT", "TEXT"),
            Token.env("COLLECTOR_ADDRESS", "otel-collector:55680"),
        ],
    ),
    "metrics-powermax": ObservabilityComponent(
        artifact="karavi-metrics-powermax.yaml",
        image_placeholder="<POWERMAX_OBS_IMAGE>",
        tokens=[
            Token.env("POWERMAX_CAPACITY_METRICS_ENABLED", "true"),
            Token.env("POWERMAX_CAPACITY_POLL_FREQUENCY", "10"),
            Token.env("POWERMAX_PERFORMANCE_METRICS_ENABLED", "true"),
            Token.env("POWERMAX_PERFORMANCE_POLL_FREQUENCY", "10"),
            Token.env("POWERMAX_MAX_CONCURRENT_QUERIES", "10"),
            Token.env("POWERMAX_LOG_LEVEL", "INFO"),
            Token.env("POWERMAX_LOG_FORMAT", "TEXT"),
            Token.env("X_CSI_CONFIG_MAP_NAME", "powermax-reverseproxy-config"),
            Token.env("COLLECTOR_ADDRESS", "otel-collector:55680"),
        ],
    ),
}

# Name of the credentials volume in each metrics Deployment
CREDENTIALS_VOLUMES = {
    DriverType.POWERSCALE: "isilon-creds",
    DriverType.POWERFLEX: "vxflexos-config",
}

# Default name of the driver credentials secret, by suffix on the CR name
DRIVER_SECRET_SUFFIXES = {
    DriverType.POWERSCALE: "creds",
    DriverType.POWERFLEX: "config",
    DriverType.POWERMAX: "creds",
}


class ObservabilityHandler(ModuleHandler):
    """Handler for observability"""

    module_name = ModuleName.OBSERVABILITY

    def render(
        self,
        options: ReconcileOptions,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        # Deletion skips precheck, so the driver is checked here as well
        self.validator.check_driver(self.cr.driver_type)
        version_spec = self.version_spec()
        components = self.components()
        enabled = [comp.name for comp in components if comp.enabled is True]
        log.debug2("Enabled observability components: %s", enabled)

        objects = []
        if CERT_MANAGER_COMPONENT in enabled:
            objects.extend(
                render_cert_manager(
                    self.renderer, self.substitutions(), version_spec, is_deleting
                )
            )
        for name in [TOPOLOGY_COMPONENT, OTEL_COLLECTOR_COMPONENT]:
            if name in enabled:
                objects.extend(self.render_component(self._find(components, name)))
        for name in [TOPOLOGY_COMPONENT, OTEL_COLLECTOR_COMPONENT]:
            if name in enabled:
                objects.extend(self.render_certificate(self._find(components, name)))

        metrics_name = self.metrics_component_name()
        for name in enabled:
            if name.startswith(METRICS_COMPONENT_PREFIX) and name != metrics_name:
                log.info(
                    "Skipping %s for %s driver", name, self.cr.driver_type.value
                )
        if metrics_name in enabled:
            objects.extend(
                self.render_metrics(self._find(components, metrics_name), is_deleting)
            )
        log.debug(
            "Rendered %d observability objects for %s",
            len(objects),
            version_spec.version,
        )
        return objects

    ## Public helpers ##########################################################

    def components(self) -> List[Component]:
        """The module's components plus any defaults it does not list. Defaults
        only apply to an enabled module.
        """
        components = list(self.module.components)
        if not self.module.enabled:
            return components
        present = {comp.name for comp in components}
        for default in self.default_components():
            if default.name not in present:
                log.debug2("Adding default observability component %s", default.name)
                components.append(default)
                present.add(default.name)
        return components

    def default_components(self) -> List[Component]:
        """Read the default components shipped in a CSM manifest beside the
        observability versions

        Raises:
            TemplateIOError: if the file cannot be read or parsed
        """
        text = self.renderer.store.read_shared(
            self.module_name.template_dir, DEFAULT_COMPONENTS_FILE
        )
        try:
            manifest = yaml.safe_load(text) or {}
        except yaml.YAMLError as err:
            raise TemplateIOError(
                f"failed to parse {DEFAULT_COMPONENTS_FILE}: {err}"
            ) from err

        driver_type = canonical_driver_type(self.cr.driver_type).value
        for module in (manifest.get("spec") or {}).get("modules") or []:
            if module.get("name") != self.module_name.value:
                continue
            defaults = []
            for comp in module.get("components") or []:
                comp = dict(comp)
                comp["name"] = str(comp.get("name", "")).replace(
                    DRIVER_TYPE_PLACEHOLDER, driver_type
                )
                defaults.append(Component.from_dict(comp))
            return defaults
        return []

    def metrics_component_name(self) -> str:
        """The metrics component that matches the custom resource's driver"""
        driver_type = canonical_driver_type(self.cr.driver_type)
        return METRICS_COMPONENT_PREFIX + driver_type.value

    def render_component(self, component: Component) -> List[ManagedObject]:
        """Render one component's manifest with its token table"""
        version_spec = self.version_spec()
        spec = COMPONENTS.get(component.name)
        assert_config(
            spec is not None, f"Unknown observability component [{component.name}]"
        )
        subs = self.substitutions()
        subs.extend(resolve_tokens(spec.tokens, component))
        subs.add(
            spec.image_placeholder,
            self.image(component, version_spec, component.name, spec.default_image),
        )
        return self.renderer.render_objects(version_spec, spec.artifact, subs)

    def render_certificate(self, component: Component) -> List[ManagedObject]:
        """Render the self-signed or custom certificate for a TLS component

        Raises:
            ConfigError: if only one of the certificate and key is given
        """
        assert_config(
            bool(component.certificate) == bool(component.private_key),
            f"observability install failed -- either cert or privatekey missing "
            f"for {component.name} custom cert",
        )
        cert_file = CUSTOM_CERT_FILE if component.certificate else SELF_SIGNED_CERT_FILE
        subs = self.substitutions()
        subs.add("<BASE64_CERTIFICATE>", component.certificate)
        subs.add("<BASE64_PRIVATE_KEY>", component.private_key)
        subs.add("<OBSERVABILITY_SECRET_PREFIX>", CERT_SECRET_PREFIXES[component.name])
        return self.renderer.render_shared_objects(
            subs, self.module_name.template_dir, cert_file
        )

    def render_metrics(
        self,
        component: Component,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        """Render the driver's metrics exporter. The copied secrets come before
        the Deployment that mounts them.
        """
        objects = self.render_component(component)
        deployment = None
        for obj in objects:
            if obj.kind == "Deployment":
                deployment = obj
                break
        assert_render(
            deployment is not None,
            f"could not find the {component.name} Deployment",
        )
        objects.remove(deployment)
        self.prepare_metrics_deployment(deployment.definition)
        objects.extend(self.copied_secrets(is_deleting))
        objects.append(deployment)
        return objects

    def prepare_metrics_deployment(self, deployment: dict):
        """Point the credentials volume at the driver's secret and inject
        authorization with prefixed secret names
        """
        pod_spec = get_pod_spec(deployment)
        driver_type = canonical_driver_type(self.cr.driver_type)
        auth_secret = self.cr.driver.auth_secret
        credentials_volume = CREDENTIALS_VOLUMES.get(driver_type)
        if auth_secret and credentials_volume:
            for volume in pod_spec.get("volumes") or []:
                if volume.get("name") == credentials_volume and "secret" in volume:
                    volume["secret"]["secretName"] = auth_secret

        if not self.cr.is_module_enabled(ModuleName.AUTHORIZATION):
            return
        AuthorizationHandler(self.context).inject_into(deployment)

        auth_names = AUTH_SECRETS + [ROOT_CERTIFICATE]
        for volume in pod_spec.get("volumes") or []:
            secret = volume.get("secret")
            if volume.get("name") in auth_names and secret:
                secret["secretName"] = self.prefixed_secret_name(secret["secretName"])
        for container in pod_spec["containers"]:
            if container.get("name") != AUTH_SIDECAR_COMPONENT:
                continue
            for env in container.get("env") or []:
                secret_ref = (env.get("valueFrom") or {}).get("secretKeyRef")
                if (
                    env.get("name") in TOKEN_ENVS
                    and secret_ref
                    and secret_ref.get("name") in auth_names
                ):
                    secret_ref["name"] = self.prefixed_secret_name(secret_ref["name"])

    def prefixed_secret_name(self, name: str) -> str:
        """Authorization secrets from several drivers share the observability
        namespace, so each copy is prefixed with the driver type
        """
        return f"{self.cr.driver_type.value}-{name}"

    def copied_secrets(self, is_deleting: bool = False) -> List[ManagedObject]:
        """Copies of the driver credentials and authorization secrets for the
        observability namespace

        Raises:
            MissingPrerequisiteError: if a source secret is missing on install
        """
        driver_type = canonical_driver_type(self.cr.driver_type)
        suffix = DRIVER_SECRET_SUFFIXES.get(driver_type)
        assert_config(
            self.cr.driver.auth_secret or suffix,
            f"No credentials secret known for driver [{driver_type.value}]",
        )
        driver_secret = self.cr.driver.auth_secret or f"{self.cr.name}-{suffix}"
        secrets = [self._copy_secret(driver_secret, driver_secret, is_deleting)]

        if self.cr.is_module_enabled(ModuleName.AUTHORIZATION):
            auth_component = self.cr.get_module(
                ModuleName.AUTHORIZATION
            ).first_component()
            names = list(AUTH_SECRETS)
            if not skip_certificate_validation(auth_component):
                names.append(ROOT_CERTIFICATE)
            for name in names:
                target = self.prefixed_secret_name(name)
                secrets.append(self._copy_secret(name, target, is_deleting))
        return secrets

    ## Implementation ##########################################################

    @staticmethod
    def _find(components: List[Component], name: str) -> Optional[Component]:
        for comp in components:
            if comp.name == name:
                return comp
        return None

    def _copy_secret(
        self, source: str, target: str, is_deleting: bool
    ) -> ManagedObject:
        namespace = config.observability_namespace
        copy = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": target, "namespace": namespace},
        }
        if is_deleting:
            # Only the identity is needed to remove the copy
            return ManagedObject(copy)
        success, current = self.context.deploy_manager.get_object_current_state(
            kind="Secret", name=source, namespace=self.cr.namespace, api_version="v1"
        )
        assert_cluster(success, f"failed to read secret {self.cr.namespace}/{source}")
        if current is None:
            raise MissingPrerequisiteError(resource_name=source)
        if "type" in current:
            copy["type"] = current["type"]
        if "data" in current:
            copy["data"] = dict(current["data"])
        log.debug2("Copying secret %s to %s/%s", source, namespace, target)
        return ManagedObject(copy)

"""
Authorization proxy server. Renders the standalone proxy server install: the
services, redis storage, ingress, policies and TLS certificate. The proxy
server does not depend on a storage driver.
"""

# Standard
from typing import List, Optional
import copy

# First Party
import alog

# Local
from ..custom_resource import Component
from ..exceptions import assert_config
from ..managed_object import ManagedObject
from ..registry import ModuleName
from .base import ModuleHandler, ReconcileOptions
from .cert_manager import CERT_MANAGER_COMPONENT, render_cert_manager

log = alog.use_channel("AUTHS")

PROXY_SERVER_COMPONENT = "proxy-server"
REDIS_COMPONENT = "redis"
NGINX_COMPONENT = "nginx"

DEPLOYMENT_ARTIFACT = "deployment.yaml"
LOCAL_PROVISIONER_ARTIFACT = "local-provisioner.yaml"
INGRESS_ARTIFACT = "ingress.yaml"
NGINX_ARTIFACT = "nginx-ingress-controller.yaml"
POLICIES_ARTIFACT = "policies.yaml"
SELF_SIGNED_CERT_ARTIFACT = "selfsigned-cert.yaml"
CUSTOM_CERT_ARTIFACT = "custom-cert.yaml"

REQUIRED_SECRETS = ["karavi-config-secret", "karavi-storage-secret"]

DEFAULT_REDIS_STORAGE_CLASS = "csm-authorization-local-storage"
DEFAULT_HOSTNAME = "csm-authorization.com"
DEFAULT_INGRESS_CLASS = "nginx"
OPENSHIFT_TERMINATION_ANNOTATION = "route.openshift.io/termination"

# placeholder -> images.yaml key
PROXY_SERVER_IMAGES = {
    "<AUTHORIZATION_PROXY_SERVER_IMAGE>": "proxy-server",
    "<AUTHORIZATION_OPA_IMAGE>": "opa",
    "<AUTHORIZATION_OPA_KUBEMGMT_IMAGE>": "opa-kube-mgmt",
    "<AUTHORIZATION_TENANT_SERVICE_IMAGE>": "tenant-service",
    "<AUTHORIZATION_ROLE_SERVICE_IMAGE>": "role-service",
    "<AUTHORIZATION_STORAGE_SERVICE_IMAGE>": "storage-service",
}
REDIS_IMAGES = {
    "<AUTHORIZATION_REDIS_IMAGE>": "redis",
    "<AUTHORIZATION_REDIS_COMMANDER_IMAGE>": "redis-commander",
}


class AuthorizationServerHandler(ModuleHandler):
    """Handler for the authorization proxy server"""

    module_name = ModuleName.AUTHORIZATION_PROXY_SERVER
    requires_driver_support = False

    def check_prerequisites(self):
        self._certificate_pair()
        self.validator.require_resources(REQUIRED_SECRETS, self.cr.namespace)

    def render(
        self,
        options: ReconcileOptions,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        version_spec = self.version_spec()
        proxy_server = self.get_component(PROXY_SERVER_COMPONENT)
        redis = self.get_component(REDIS_COMPONENT)

        objects = []
        if self.component_enabled(CERT_MANAGER_COMPONENT):
            objects.extend(
                render_cert_manager(
                    self.renderer, self.substitutions(), version_spec, is_deleting
                )
            )

        storage_class = redis.redis_storage_class if redis is not None else ""
        if not storage_class:
            objects.extend(
                self.renderer.render_objects(
                    version_spec, LOCAL_PROVISIONER_ARTIFACT, self.substitutions()
                )
            )

        subs = self.substitutions()
        for placeholder, image_key in PROXY_SERVER_IMAGES.items():
            subs.add(
                placeholder,
                self._component_env_image(
                    proxy_server, placeholder, version_spec, image_key
                ),
            )
        if proxy_server is not None and proxy_server.image:
            subs.add("<AUTHORIZATION_PROXY_SERVER_IMAGE>", proxy_server.image)
        for placeholder, image_key in REDIS_IMAGES.items():
            subs.add(
                placeholder,
                self._component_env_image(redis, placeholder, version_spec, image_key),
            )
        subs.add(
            "<REDIS_STORAGE_CLASS>", storage_class or DEFAULT_REDIS_STORAGE_CLASS
        )
        objects.extend(
            self.renderer.render_objects(version_spec, DEPLOYMENT_ARTIFACT, subs)
        )

        objects.extend(self._render_certificate(version_spec, proxy_server))

        if self.component_enabled(NGINX_COMPONENT):
            objects.extend(
                self.renderer.render_objects(
                    version_spec, NGINX_ARTIFACT, self.substitutions()
                )
            )
        objects.extend(self._render_ingress(version_spec, proxy_server))
        objects.extend(
            self.renderer.render_objects(
                version_spec, POLICIES_ARTIFACT, self.substitutions()
            )
        )
        log.debug(
            "Rendered %d authorization proxy server objects for %s",
            len(objects),
            version_spec.version,
        )
        return objects

    ## Implementation ##########################################################

    @staticmethod
    def _component_env_image(
        component: Optional[Component],
        placeholder: str,
        version_spec,
        image_key: str,
    ) -> str:
        """Image for one of the server's containers: an env override named
        after the placeholder, else the version's image map
        """
        env_name = placeholder.strip("<>")
        if component is not None:
            override = component.get_env(env_name)
            if override:
                return override
        return version_spec.images.get(image_key, "")

    def _ingress_settings(self, proxy_server: Optional[Component]):
        hostname = DEFAULT_HOSTNAME
        class_name = DEFAULT_INGRESS_CLASS
        hosts = []
        annotations = {}
        if proxy_server is not None:
            hostname = proxy_server.hostname or DEFAULT_HOSTNAME
            for ingress in proxy_server.proxy_server_ingress:
                class_name = ingress.get("ingressClassName") or class_name
                hosts.extend(ingress.get("hosts") or [])
                annotations.update(ingress.get("annotations") or {})
        if self.cr.driver.is_openshift:
            annotations[OPENSHIFT_TERMINATION_ANNOTATION] = "edge"
        return hostname, class_name, hosts, annotations

    def _render_ingress(self, version_spec, proxy_server) -> List[ManagedObject]:
        hostname, class_name, hosts, annotations = self._ingress_settings(
            proxy_server
        )
        subs = self.substitutions()
        subs.add("<AUTHORIZATION_HOSTNAME>", hostname)
        subs.add("<PROXY_INGRESS_CLASSNAME>", class_name)
        subs.add("<PROXY_INGRESS_HOST>", hosts[0] if hosts else hostname)
        objects = self.renderer.render_objects(version_spec, INGRESS_ARTIFACT, subs)

        for obj in objects:
            if obj.kind != "Ingress":
                continue
            if annotations:
                obj.metadata["annotations"] = {
                    **(obj.metadata.get("annotations") or {}),
                    **annotations,
                }
            extra_hosts = [host for host in hosts if host != hostname]
            _add_extra_hosts(obj.definition, extra_hosts)
        return objects

    def _certificate_pair(self):
        """Get the custom certificate and key, if any

        Raises:
            ConfigError: if only one of the certificate and key is given
        """
        proxy_server = self.get_component(PROXY_SERVER_COMPONENT)
        if proxy_server is None:
            return "", ""
        certificate = proxy_server.certificate
        private_key = proxy_server.private_key
        assert_config(
            bool(certificate) == bool(private_key),
            "authorization install failed -- either cert or privatekey missing "
            "for custom cert",
        )
        return certificate, private_key

    def _render_certificate(self, version_spec, proxy_server) -> List[ManagedObject]:
        certificate, private_key = self._certificate_pair()
        subs = self.substitutions()
        if certificate:
            log.debug2("Using custom certificate for the proxy server")
            subs.add("<BASE64_CERTIFICATE>", certificate)
            subs.add("<BASE64_PRIVATE_KEY>", private_key)
            return self.renderer.render_objects(
                version_spec, CUSTOM_CERT_ARTIFACT, subs
            )

        hostname, _, hosts, _ = self._ingress_settings(proxy_server)
        subs.add("<AUTHORIZATION_HOSTNAME>", hostname)
        subs.add("<PROXY_INGRESS_HOST>", hosts[0] if hosts else hostname)
        return self.renderer.render_objects(
            version_spec, SELF_SIGNED_CERT_ARTIFACT, subs
        )


def _add_extra_hosts(ingress: dict, extra_hosts: List[str]):
    """Give each extra host a copy of the ingress's first rule"""
    rules = ingress.get("spec", {}).get("rules") or []
    if not rules or not extra_hosts:
        return
    for host in extra_hosts:
        rule = copy.deepcopy(rules[0])
        rule["host"] = host
        rules.append(rule)
    tls = ingress["spec"].get("tls") or []
    if tls:
        tls[0].setdefault("hosts", [])
        tls[0]["hosts"].extend(h for h in extra_hosts if h not in tls[0]["hosts"])

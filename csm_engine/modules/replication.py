"""
Replication. Injects the dell-csi-replicator sidecar and its RBAC rules into
the driver controller and renders the replication controller manager.
"""

# Standard
from typing import List

# First Party
import alog

# Local
from ..inject import (
    append_container,
    inject_driver_env,
    update_container_from_components,
)
from ..managed_object import ManagedObject
from ..registry import ModuleName
from ..render import Token, resolve_tokens
from .base import DriverWorkloads, ModuleHandler, ReconcileOptions

log = alog.use_channel("REPLC")

SIDECAR_COMPONENT = "dell-csi-replicator"
CONTROLLER_MANAGER_COMPONENT = "dell-replication-controller-manager"
CONTROLLER_INIT_COMPONENT = "dell-replication-controller-init"

CONTAINER_ARTIFACT = "container.yaml"
RULES_ARTIFACT = "rules.yaml"
CONTROLLER_ARTIFACT = "controller.yaml"

CONTEXT_PREFIX_ENV = "X_CSI_REPLICATION_CONTEXT_PREFIX"
PREFIX_ENV = "X_CSI_REPLICATION_PREFIX"
DEFAULT_REPLICATION_PREFIX = "replication.storage.dell.com"

DEFAULT_CONTROLLER_IMAGE = "dellemc/dell-replication-controller:v1.4.0"
DEFAULT_INIT_IMAGE = "dellemc/dell-replication-init:v1.0.0"

CONTROLLER_TOKENS = [
    Token.env("REPLICATION_CTRL_LOG_LEVEL", "debug"),
    Token.env("REPLICATION_CTRL_REPLICAS", "1"),
    Token.env("RETRY_INTERVAL_MIN", "1s"),
    Token.env("RETRY_INTERVAL_MAX", "5m"),
]


class ReplicationHandler(ModuleHandler):
    """Handler for replication"""

    module_name = ModuleName.REPLICATION

    def render(
        self,
        options: ReconcileOptions,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        version_spec = self.version_spec()
        manager = self.get_component(CONTROLLER_MANAGER_COMPONENT)
        subs = self.substitutions()
        subs.extend(resolve_tokens(CONTROLLER_TOKENS, manager))
        subs.add(
            "<REPLICATION_CONTROLLER_IMAGE>",
            self.image(
                manager,
                version_spec,
                CONTROLLER_MANAGER_COMPONENT,
                DEFAULT_CONTROLLER_IMAGE,
            ),
        )
        subs.add(
            "<REPLICATION_INIT_IMAGE>",
            self.image(
                self.get_component(CONTROLLER_INIT_COMPONENT),
                version_spec,
                CONTROLLER_INIT_COMPONENT,
                DEFAULT_INIT_IMAGE,
            ),
        )
        return self.renderer.render_objects(version_spec, CONTROLLER_ARTIFACT, subs)

    def inject(self, workloads: DriverWorkloads, options: ReconcileOptions):
        if workloads.controller is not None:
            self.inject_controller(workloads.controller)
        if workloads.cluster_role is not None:
            self.inject_cluster_role(workloads.cluster_role)

    ## Public helpers ##########################################################

    def prefixes(self):
        """Get the (context prefix, prefix) pair from the sidecar component

        Returns:
            context_prefix:  str
                Defaults to the driver's plugin identifier
            prefix:  str
                Defaults to the replication API group
        """
        driver_param = self.driver_param()
        tokens = [
            Token(
                "<ReplicationContextPrefix>",
                CONTEXT_PREFIX_ENV,
                driver_param.plugin_identifier if driver_param else "",
            ),
            Token("<ReplicationPrefix>", PREFIX_ENV, DEFAULT_REPLICATION_PREFIX),
        ]
        subs = resolve_tokens(tokens, self.get_component(SIDECAR_COMPONENT))
        return subs.get("<ReplicationContextPrefix>"), subs.get("<ReplicationPrefix>")

    def inject_controller(self, workload: dict):
        """Add the replicator sidecar and the prefix env vars for the driver"""
        version_spec = self.version_spec()
        context_prefix, prefix = self.prefixes()
        subs = self.substitutions()
        subs.add("<ReplicationContextPrefix>", context_prefix)
        subs.add("<ReplicationPrefix>", prefix)
        driver_param = self.driver_param()
        if driver_param is not None:
            subs.add(
                "<DriverConfigParamsVolumeMount>",
                driver_param.config_params_volume_mount,
            )
        container = self.renderer.render_container(
            version_spec, CONTAINER_ARTIFACT, subs
        )
        update_container_from_components(self.module.components, container)
        append_container(workload, container)
        inject_driver_env(
            workload,
            [
                {"name": CONTEXT_PREFIX_ENV, "value": context_prefix},
                {"name": PREFIX_ENV, "value": prefix},
            ],
        )

    def inject_cluster_role(self, cluster_role: dict):
        """Append the replication RBAC rules to the controller's ClusterRole"""
        rules = self.renderer.render_list(
            self.version_spec(), RULES_ARTIFACT, self.substitutions()
        )
        if cluster_role.get("rules") is None:
            cluster_role["rules"] = []
        cluster_role["rules"].extend(rules)
        log.debug2("Added %d replication rules", len(rules))

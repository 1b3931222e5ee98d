"""
Resiliency. Injects the podmon sidecar into the driver controller and node
workloads and tells the driver where podmon listens.
"""

# Standard
from typing import List, Optional
import dataclasses

# First Party
import alog

# Local
from ..custom_resource import Component
from ..inject import (
    append_container,
    inject_driver_env,
    update_container_from_components,
)
from ..managed_object import ManagedObject
from ..registry import ModuleName
from .base import DriverWorkloads, ModuleHandler, ReconcileOptions

log = alog.use_channel("RSLNC")

PODMON_COMPONENT = "podmon"

POLL_RATE_ARG = "--arrayConnectivityPollRate="
API_PORT_ARG = "--apiPort="
CONTROLLER_MODE = "--mode=controller"
NODE_MODE = "--mode=node"

PODMON_ENABLED_ENV = "X_CSI_PODMON_ENABLED"
POLL_RATE_ENV = "X_CSI_PODMON_ARRAY_CONNECTIVITY_POLL_RATE"
API_PORT_ENV = "X_CSI_PODMON_API_PORT"


def parse_arg_value(args: Optional[List[str]], prefix: str) -> str:
    """Get the value of the first --key=value argument with the given prefix.
    Arguments may hold several space separated flags.

    Returns:
        value:  str
            The value, or an empty string when no argument matches
    """
    for arg in args or []:
        for flag in arg.split(" "):
            if flag.startswith(prefix):
                return flag[len(prefix) :]
    return ""


def mode_args(args: Optional[List[str]], mode: str) -> List[str]:
    """Get the flags of the first argument starting with the given --mode
    flag, split on spaces. Returns an empty list when no argument matches.
    """
    for arg in args or []:
        if arg.startswith(mode):
            return arg.split(" ")
    return []


class ResiliencyHandler(ModuleHandler):
    """Handler for resiliency"""

    module_name = ModuleName.RESILIENCY

    def render(
        self,
        options: ReconcileOptions,
        is_deleting: bool = False,
    ) -> List[ManagedObject]:
        # The sidecar has no standalone objects
        return []

    def inject(self, workloads: DriverWorkloads, options: ReconcileOptions):
        podmon = self.get_component(PODMON_COMPONENT) or self.component
        driver_env = [
            {"name": PODMON_ENABLED_ENV, "value": "true"},
            {
                "name": POLL_RATE_ENV,
                "value": parse_arg_value(podmon.args, POLL_RATE_ARG),
            },
            {"name": API_PORT_ENV, "value": parse_arg_value(podmon.args, API_PORT_ARG)},
        ]
        # Render every sidecar before touching a workload so that a render
        # failure leaves both workloads unchanged
        sidecars = [
            (workload, self.render_sidecar(podmon, mode))
            for workload, mode in [
                (workloads.controller, CONTROLLER_MODE),
                (workloads.node, NODE_MODE),
            ]
            if workload is not None
        ]
        for workload, sidecar in sidecars:
            append_container(workload, sidecar)
            inject_driver_env(workload, driver_env)

    ## Public helpers ##########################################################

    def render_sidecar(self, podmon: Component, mode: str) -> dict:
        """Render the podmon container for the controller or node mode"""
        driver_param = self.validator.check_driver(self.cr.driver_type)
        artifact = f"container-{driver_param.plugin_identifier}.yaml"
        subs = self.substitutions()
        subs.add(
            "<PodmonArrayConnectivityPollRate>",
            parse_arg_value(podmon.args, POLL_RATE_ARG),
        )
        subs.add("<PodmonAPIPort>", parse_arg_value(podmon.args, API_PORT_ARG))
        container = self.renderer.render_container(self.version_spec(), artifact, subs)
        container["args"] = mode_args(container.get("args"), mode)

        # Custom args given per mode only apply to that mode
        custom_args = podmon.args
        if any(arg.startswith("--mode=") for arg in custom_args):
            custom_args = mode_args(custom_args, mode)
        update_container_from_components(
            [dataclasses.replace(podmon, args=custom_args)], container
        )
        log.debug2(
            "Rendered podmon sidecar with %d args for %s",
            len(container.get("args") or []),
            mode,
        )
        return container

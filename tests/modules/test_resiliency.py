"""
Tests for the resiliency handler
"""

# Standard
from unittest import mock

# Third Party
import pytest

# Local
from csm_engine.exceptions import RenderError, UnsupportedDriverError
from csm_engine.modules import DriverWorkloads, ReconcileOptions
from csm_engine.modules.resiliency import (
    API_PORT_ARG,
    CONTROLLER_MODE,
    NODE_MODE,
    POLL_RATE_ARG,
    ResiliencyHandler,
    mode_args,
    parse_arg_value,
)
from csm_engine.test_helpers.helpers import (
    container_names,
    env_dict,
    get_container,
    make_workloads,
    setup_component,
    setup_context,
    setup_cr,
    setup_module,
)

## Helpers #####################################################################

PODMON_ARGS = ["--arrayConnectivityPollRate=60", "--apiPort=60080"]


def make_handler(args=None, driver_type="powerscale"):
    components = [setup_component("podmon", args=args or [])]
    cr_dict = setup_cr(
        driver_type=driver_type,
        modules=[setup_module("resiliency", components=components)],
    )
    return ResiliencyHandler(setup_context(cr_dict))


def podmon_args(workload):
    return get_container(workload, "podmon")["args"]


## parse_arg_value #############################################################


@pytest.mark.parametrize(
    ["args", "prefix", "expected"],
    [
        (PODMON_ARGS, POLL_RATE_ARG, "60"),
        (PODMON_ARGS, API_PORT_ARG, "60080"),
        (["--mode=node --apiPort=8083 --foo=bar"], API_PORT_ARG, "8083"),
        (["--labelvalue=csi-isilon"], POLL_RATE_ARG, ""),
        ([], POLL_RATE_ARG, ""),
        (None, API_PORT_ARG, ""),
        (["--arrayConnectivityPollRate="], POLL_RATE_ARG, ""),
    ],
)
def test_parse_arg_value(args, prefix, expected):
    """A missing flag yields an empty string, never an error"""
    assert parse_arg_value(args, prefix) == expected


def test_mode_args():
    args = ["--mode=controller --a=1", "--mode=node --b=2 --c=3"]
    assert mode_args(args, NODE_MODE) == ["--mode=node", "--b=2", "--c=3"]
    assert mode_args(args, CONTROLLER_MODE) == ["--mode=controller", "--a=1"]
    assert mode_args(["--foo"], NODE_MODE) == []


## Precheck ####################################################################


@pytest.mark.parametrize("driver_type", ["powerscale", "powerflex", "powerstore"])
def test_precheck_supported_drivers(driver_type):
    make_handler(driver_type=driver_type).precheck(ReconcileOptions())


def test_precheck_unsupported_driver():
    with pytest.raises(UnsupportedDriverError):
        make_handler(driver_type="powermax").precheck(ReconcileOptions())


## Render ######################################################################


def test_render_has_no_standalone_objects():
    assert make_handler().render(ReconcileOptions()) == []


## Inject ######################################################################


def test_inject_controller_and_node():
    """Each workload gets a podmon sidecar holding only its mode's flags"""
    handler = make_handler(args=PODMON_ARGS)
    workloads = make_workloads()
    handler.inject(workloads, ReconcileOptions())

    assert container_names(workloads.controller)[-1] == "podmon"
    assert container_names(workloads.node)[-1] == "podmon"

    controller_args = podmon_args(workloads.controller)
    assert controller_args[0] == "--mode=controller"
    assert "--arrayConnectivityPollRate=60" in controller_args
    assert "--labelvalue=csi-isilon" in controller_args
    assert not any(arg.startswith("--mode=node") for arg in controller_args)

    node_args = podmon_args(workloads.node)
    assert node_args[0] == "--mode=node"
    assert "--apiPort=60080" in node_args
    assert "--csisock=unix:/var/lib/kubelet/plugins/csi-isilon/csi_sock" in node_args

    for workload in [workloads.controller, workloads.node]:
        driver_env = env_dict(get_container(workload, "driver"))
        assert driver_env["X_CSI_PODMON_ENABLED"] == "true"
        assert driver_env["X_CSI_PODMON_ARRAY_CONNECTIVITY_POLL_RATE"] == "60"
        assert driver_env["X_CSI_PODMON_API_PORT"] == "60080"

    # The ClusterRole is not touched
    assert workloads.cluster_role == make_workloads().cluster_role


def test_inject_without_args():
    """Absent flags become empty values instead of failing"""
    handler = make_handler()
    workloads = DriverWorkloads(controller=make_workloads().controller)
    handler.inject(workloads, ReconcileOptions())
    assert "--arrayConnectivityPollRate=" in podmon_args(workloads.controller)
    driver_env = env_dict(get_container(workloads.controller, "driver"))
    assert driver_env["X_CSI_PODMON_ARRAY_CONNECTIVITY_POLL_RATE"] == ""
    assert driver_env["X_CSI_PODMON_API_PORT"] == ""


def test_inject_per_mode_custom_args():
    """Custom args given per mode only reach that mode's sidecar"""
    handler = make_handler(
        args=[
            "--mode=controller --skipArrayConnectionValidation=true",
            "--mode=node --ignoreVolumelessPods=true",
        ]
    )
    workloads = make_workloads()
    handler.inject(workloads, ReconcileOptions())

    controller_args = podmon_args(workloads.controller)
    assert "--skipArrayConnectionValidation=true" in controller_args
    assert "--skipArrayConnectionValidation=false" not in controller_args
    assert "--ignoreVolumelessPods=false" in controller_args

    node_args = podmon_args(workloads.node)
    assert "--ignoreVolumelessPods=true" in node_args
    assert "--ignoreVolumelessPods=false" not in node_args
    assert "--skipArrayConnectionValidation=true" not in node_args


def test_inject_driver_specific_template():
    handler = make_handler(args=PODMON_ARGS, driver_type="powerstore")
    workloads = DriverWorkloads(node=make_workloads().node)
    handler.inject(workloads, ReconcileOptions())
    assert "--labelvalue=csi-powerstore" in podmon_args(workloads.node)


def test_inject_render_failure_leaves_workloads():
    """A sidecar that fails to render leaves both workloads untouched"""
    handler = make_handler(args=PODMON_ARGS)
    render_sidecar = handler.render_sidecar

    def fail_for_node(podmon, mode):
        if mode == NODE_MODE:
            raise RenderError("broken node template")
        return render_sidecar(podmon, mode)

    workloads = make_workloads()
    with mock.patch.object(handler, "render_sidecar", side_effect=fail_for_node):
        with pytest.raises(RenderError):
            handler.inject(workloads, ReconcileOptions())
    assert workloads.controller == make_workloads().controller
    assert workloads.node == make_workloads().node

"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from unittest import mock
import copy
import inspect
import os

# First Party
import alog

# Local
from csm_engine.config import library_config as config_detail_dict
from csm_engine.custom_resource import CustomResource
from csm_engine.deploy_manager.dry_run_deploy_manager import DryRunDeployManager
from csm_engine.engine import ModuleEngine
from csm_engine.modules import DriverWorkloads, ModuleContext
from csm_engine.render import FileTemplateStore, ModuleRenderer

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
TEST_CONFIG_ROOT = os.path.join(TEST_DATA_DIR, "config")

TEST_INSTANCE_NAME = "test-instance"
TEST_INSTANCE_UID = "12345678-1234-1234-1234-123456789012"
TEST_NAMESPACE = "test"
TEST_DRIVER_CONFIG_VERSION = "v2.13.0"
OBSERVABILITY_NAMESPACE = "karavi"


## Custom resources ############################################################


def setup_cr(
    driver_type="powerscale",
    modules=None,
    driver_config_version=TEST_DRIVER_CONFIG_VERSION,
    name=TEST_INSTANCE_NAME,
    namespace=TEST_NAMESPACE,
    driver=None,
    **kwargs,
) -> dict:
    """Build a ContainerStorageModule manifest dict

    Args:
        driver_type:  str
            The csiDriverType of the driver
        modules:  Optional[List[dict]]
            The spec.modules entries
        driver_config_version:  str
            The driver's configVersion
        name:  str
            metadata.name
        namespace:  str
            metadata.namespace
        driver:  Optional[dict]
            Extra fields merged into spec.driver
        **kwargs:
            Extra top-level fields

    Returns:
        cr_dict:  dict
            The manifest
    """
    cr_dict = copy.deepcopy(kwargs)
    cr_dict.setdefault("kind", "ContainerStorageModule")
    cr_dict.setdefault("apiVersion", "storage.dell.com/v1")
    metadata = cr_dict.setdefault("metadata", {})
    metadata.setdefault("name", name)
    metadata.setdefault("namespace", namespace)
    metadata.setdefault("uid", TEST_INSTANCE_UID)
    spec = cr_dict.setdefault("spec", {})
    spec["driver"] = {
        "csiDriverType": driver_type,
        "configVersion": driver_config_version,
        **copy.deepcopy(driver or {}),
    }
    spec["modules"] = copy.deepcopy(modules or [])
    return cr_dict


def setup_module(name, enabled=True, config_version=None, components=None) -> dict:
    """Build one spec.modules entry"""
    module = {"name": name, "enabled": enabled, "components": components or []}
    if config_version is not None:
        module["configVersion"] = config_version
    return module


def setup_component(name, envs=None, **kwargs) -> dict:
    """Build one component entry. Envs may be given as a dict."""
    component = {"name": name, **kwargs}
    if isinstance(envs, dict):
        envs = [{"name": key, "value": val} for key, val in envs.items()]
    if envs is not None:
        component["envs"] = envs
    return component


def make_secret(name, namespace=TEST_NAMESPACE, data=None) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {"name": name, "namespace": namespace},
        "data": data or {"key": "dmFsdWU="},
    }


def make_config_map(name, namespace=TEST_NAMESPACE, data=None) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace},
        "data": data or {"config.yaml": "key: value"},
    }


def make_secrets(*names, namespace=TEST_NAMESPACE):
    return [make_secret(name, namespace) for name in names]


## Driver workloads ############################################################


def make_driver_container(envs=None) -> dict:
    return {
        "name": "driver",
        "image": "dellemc/csi-driver:v2.13.0",
        "env": copy.deepcopy(envs)
        if envs is not None
        else [
            {"name": "CSI_ENDPOINT", "value": "unix:///var/run/csi/csi.sock"},
            {"name": "X_CSI_MODE", "value": "controller"},
        ],
        "volumeMounts": [{"name": "socket-dir", "mountPath": "/var/run/csi"}],
    }


def make_controller(name="test-instance-controller", extra_containers=None) -> dict:
    """A driver controller Deployment with a driver container and a
    provisioner sidecar
    """
    containers = [
        {"name": "provisioner", "image": "registry.k8s.io/csi-provisioner:v4.0.0"},
        make_driver_container(),
    ] + copy.deepcopy(extra_containers or [])
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": TEST_NAMESPACE},
        "spec": {
            "replicas": 2,
            "template": {
                "metadata": {"labels": {"app": name}},
                "spec": {
                    "containers": containers,
                    "volumes": [{"name": "socket-dir", "emptyDir": {}}],
                },
            },
        },
    }


def make_node(name="test-instance-node") -> dict:
    """A driver node DaemonSet with a driver container and a registrar"""
    driver = make_driver_container(
        [{"name": "X_CSI_MODE", "value": "node"}],
    )
    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": {"name": name, "namespace": TEST_NAMESPACE},
        "spec": {
            "template": {
                "spec": {
                    "containers": [
                        driver,
                        {
                            "name": "registrar",
                            "image": "registry.k8s.io/csi-node-driver-registrar",
                        },
                    ],
                    "volumes": [
                        {"name": "socket-dir", "hostPath": {"path": "/var/lib"}}
                    ],
                },
            },
        },
    }


def make_cluster_role(name="test-instance-controller") -> dict:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRole",
        "metadata": {"name": name},
        "rules": [
            {
                "apiGroups": [""],
                "resources": ["persistentvolumes"],
                "verbs": ["get", "list", "watch", "create", "delete"],
            }
        ],
    }


def make_workloads() -> DriverWorkloads:
    return DriverWorkloads(
        controller=make_controller(),
        node=make_node(),
        cluster_role=make_cluster_role(),
    )


def container_names(workload: dict):
    return [cont["name"] for cont in workload["spec"]["template"]["spec"]["containers"]]


def get_container(workload: dict, name: str) -> dict:
    for container in workload["spec"]["template"]["spec"]["containers"]:
        if container["name"] == name:
            return container
    raise AssertionError(f"No container named {name}")


def env_dict(container: dict) -> dict:
    return {env["name"]: env.get("value") for env in container.get("env") or []}


## Engine setup ################################################################


def setup_engine(deploy_manager=None, resources=None, **kwargs) -> ModuleEngine:
    """Build an engine over the test template tree"""
    deploy_manager = deploy_manager or MockDeployManager(resources=resources)
    return ModuleEngine(deploy_manager, config_root=TEST_CONFIG_ROOT, **kwargs)


def setup_context(cr_dict, deploy_manager=None, resources=None) -> ModuleContext:
    """Build the context a handler runs with for one custom resource"""
    return ModuleContext(
        cr=CustomResource.from_manifest(cr_dict),
        config_root=TEST_CONFIG_ROOT,
        deploy_manager=deploy_manager or MockDeployManager(resources=resources),
        module_renderer=ModuleRenderer(FileTemplateStore(TEST_CONFIG_ROOT)),
    )


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion
    """
    # Override the configs and hang onto the old values
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
        config_detail_dict[key] = val

    # Yield to the context
    try:
        yield
    finally:
        # Revert to the old values
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


## Deploy manager mocks ########################################################


def get_failable_method(fail_flag, method, failure_return=False):
    log.debug4(
        "Setting up failable mock of [%s] with fail flag: %s", str(method), fail_flag
    )

    def failable_method(*args, **kwargs):
        log.debug4(
            "Running failable mock of [%s] with fail flag: %s", str(method), fail_flag
        )
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            log.debug4("Raising in failable mock")
            raise fail_flag
        if callable(fail_flag):
            log.debug4("Calling callable fail flag")
            res = fail_flag(*args, **kwargs)
            if res is not None:
                return res
        elif fail_flag == "assert":
            log.debug4("Asserting in failable mock")
            raise AssertionError(f"You told me to fail {method}!")
        elif fail_flag:
            log.debug4("Returning %s", failure_return)
            return failure_return
        log.debug4("Passing through (%s, **%s)", args, kwargs)
        res = method(*args, **kwargs)
        log.debug4("Passthrough res: %s", res)
        return res

    return failable_method


class FailOnce:
    """Helper callable that will fail once on the N'th call"""

    def __init__(self, fail_val, fail_number=1):
        self.call_count = 0
        self.fail_number = fail_number
        self.fail_val = fail_val

    def __call__(self, *_, **__):
        self.call_count += 1
        if self.call_count == self.fail_number:
            log.debug("Failing on call %d with %s", self.call_count, self.fail_val)
            if isinstance(self.fail_val, type) and issubclass(self.fail_val, Exception):
                raise self.fail_val("Raising!")
            return self.fail_val
        log.debug("Not failing on call %d", self.call_count)
        return None


class MockDeployManager(DryRunDeployManager):
    """The MockDeployManager wraps a standard DryRunDeployManager and adds
    configuration options to simulate failures in each of its operations.
    """

    def __init__(
        self,
        deploy_fail=False,
        deploy_raise=False,
        disable_fail=False,
        disable_raise=False,
        get_state_fail=False,
        get_state_raise=False,
        auto_enable=True,
        resources=None,
        **kwargs,
    ):
        """This DeployManager can be configured to have various failure cases
        and will mock the state of the cluster so that get_object_current_state
        will pull its information from the local dict.
        """
        resources = copy.deepcopy(resources or [])
        for resource in resources:
            resource.setdefault("apiVersion", "v1")
        super().__init__(resources, **kwargs)

        self.deploy_fail = "assert" if deploy_raise else deploy_fail
        self.disable_fail = "assert" if disable_raise else disable_fail
        self.get_state_fail = "assert" if get_state_raise else get_state_fail

        # If auto-enabling, turn the mocks on now
        if auto_enable:
            self.enable_mocks()

    #######################
    ## Helpers for Tests ##
    #######################

    def enable_mocks(self):
        """Turn the mocks on"""
        self.deploy = mock.Mock(
            side_effect=get_failable_method(
                self.deploy_fail, super().deploy, (False, False)
            )
        )
        self.disable = mock.Mock(
            side_effect=get_failable_method(
                self.disable_fail, super().disable, (False, False)
            )
        )
        self.get_object_current_state = mock.Mock(
            side_effect=get_failable_method(
                self.get_state_fail, super().get_object_current_state, (False, None)
            )
        )

    def get_obj(self, kind, name, namespace=None, api_version=None):
        return self.get_object_current_state(kind, name, namespace, api_version)[1]

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None

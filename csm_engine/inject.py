"""
The workload injector merges module sidecars, volumes, driver env vars and
annotations into already-rendered driver workloads. Every function mutates its
input in place.

The injector performs no existence checks: appending the same sidecar twice
yields two copies. Callers converge by re-deriving workloads from their
rendered state on every pass rather than injecting into a persisted copy.
"""

# Standard
from typing import Iterable, List, Optional

# First Party
import alog

# Local
from . import constants
from .custom_resource import Component, EnvVar
from .exceptions import assert_inject

log = alog.use_channel("INJCT")

## Pod spec access #############################################################


def get_pod_spec(workload: dict) -> dict:
    """Get the pod spec of a workload

    Supports the pod-template workload kinds (Deployment, DaemonSet,
    StatefulSet, ReplicaSet, Job), PodTemplate objects and bare pod templates
    of the form {"spec": {"containers": [...]}}.

    Raises:
        InjectError: if the workload has no recognizable pod spec
    """
    assert_inject(isinstance(workload, dict), "Workload is not a mapping")
    kind = workload.get("kind")
    if kind in constants.POD_TEMPLATE_WORKLOAD_KINDS:
        pod_spec = (
            ((workload.get("spec") or {}).get("template") or {}).get("spec")
        )
    elif kind == "PodTemplate":
        pod_spec = (workload.get("template") or {}).get("spec")
    else:
        pod_spec = workload.get("spec")
    assert_inject(
        isinstance(pod_spec, dict),
        f"Workload of kind [{kind}] has no pod spec",
    )
    assert_inject(
        isinstance(pod_spec.setdefault("containers", []), list),
        f"Workload of kind [{kind}] has a non-list container list",
    )
    return pod_spec


def get_containers(workload: dict) -> List[dict]:
    return get_pod_spec(workload)["containers"]


def find_container(workload: dict, name: str) -> Optional[dict]:
    """Get the first container with the given name"""
    for container in get_containers(workload):
        assert_inject(
            isinstance(container, dict) and container.get("name"),
            "Found a container without a name",
        )
        if container["name"] == name:
            return container
    return None


## Containers and volumes ######################################################


def append_container(workload: dict, container: dict):
    """Append a sidecar container as the last container of the pod"""
    assert_inject(
        isinstance(container, dict) and container.get("name"),
        "Cannot inject a container without a name",
    )
    containers = get_containers(workload)
    containers.append(container)
    log.debug2(
        "Injected container [%s] into %s; %d containers",
        container["name"],
        _describe(workload),
        len(containers),
    )


def append_volumes(workload: dict, volumes: Iterable[dict]):
    """Append volumes to the pod's volume list"""
    pod_spec = get_pod_spec(workload)
    pod_volumes = pod_spec.get("volumes")
    if pod_volumes is None:
        pod_volumes = pod_spec["volumes"] = []
    for volume in volumes:
        assert_inject(
            isinstance(volume, dict) and volume.get("name"),
            "Cannot inject a volume without a name",
        )
        pod_volumes.append(volume)
        log.debug3("Injected volume [%s] into %s", volume["name"], _describe(workload))


def remove_by_name(items: Optional[List[dict]], name: str) -> bool:
    """Remove the first entry with the given name by swapping it with the last
    entry and truncating the list.

    NOTE: This does not preserve the order of the remaining entries. Nothing
        may depend on volume or volume mount order after a removal.

    Args:
        items:  Optional[List[dict]]
            A list of named entries (volumes, volume mounts, env vars)
        name:  str
            The name of the entry to remove

    Returns:
        removed:  bool
            True if an entry was removed
    """
    if not items:
        return False
    for idx, item in enumerate(items):
        if item.get("name") == name:
            items[idx] = items[-1]
            items.pop()
            log.debug3("Removed [%s]; %d entries remain", name, len(items))
            return True
    return False


def rename_volume_mount(container: dict, old_name: str, new_name: str) -> bool:
    """Rename a container's volume mount in place"""
    for mount in container.get("volumeMounts") or []:
        if mount.get("name") == old_name:
            mount["name"] = new_name
            return True
    return False


## Driver container ############################################################


def inject_driver_env(workload: dict, envs: Iterable[dict]) -> bool:
    """Append env entries to the principal driver container

    The driver container is found by its reserved name. Workloads without one
    (e.g. sidecar-only templates) are left untouched.

    Returns:
        injected:  bool
            True if a driver container was found
    """
    driver = find_container(workload, constants.DRIVER_CONTAINER_NAME)
    if driver is None:
        log.debug2("No driver container in %s; skipping env", _describe(workload))
        return False
    env_list = driver.get("env")
    if env_list is None:
        env_list = driver["env"] = []
    for env in envs:
        env_list.append(dict(env))
    log.debug2(
        "Driver container in %s now has %d env vars", _describe(workload), len(env_list)
    )
    return True


def stamp_annotation(workload: dict, key: str, value: str = "true"):
    """Set an annotation on the workload's metadata"""
    metadata = workload.setdefault("metadata", {})
    annotations = metadata.get("annotations")
    if annotations is None:
        annotations = metadata["annotations"] = {}
    annotations[key] = value


## Component overrides #########################################################


def replace_all_envs(
    container_envs: Optional[List[dict]],
    *override_lists: Iterable[EnvVar],
) -> List[dict]:
    """Replace the values of a container's literal env vars with any matching
    overrides. Later override lists win. Env vars sourced from valueFrom and
    overrides that the container does not declare are left alone.
    """
    overrides = {}
    for override_list in override_lists:
        for env in override_list or []:
            overrides[env.name] = env.value

    updated = []
    for env in container_envs or []:
        if "valueFrom" not in env and env.get("name") in overrides:
            env = {**env, "value": overrides[env["name"]]}
        updated.append(env)
    return updated


def replace_all_args(default_args: List[str], custom_args: List[str]) -> List[str]:
    """Merge custom args into default args. A custom --key=value replaces the
    default with the same key; any other custom arg is appended.
    """
    merged = list(default_args or [])
    for custom in custom_args or []:
        custom_key = custom.split("=", 1)[0] if "=" in custom else None
        replaced = False
        if custom_key is not None:
            for idx, arg in enumerate(merged):
                if "=" in arg and arg.split("=", 1)[0] == custom_key:
                    merged[idx] = custom
                    replaced = True
        if not replaced and custom not in merged:
            merged.append(custom)
    return merged


def update_container_from_components(
    components: Iterable[Component],
    container: dict,
):
    """Apply the overrides of the component whose name matches the container:
    image, pull policy, env values and args
    """
    for component in components or []:
        if component.name != container.get("name"):
            continue
        if component.image:
            container["image"] = component.image
        if component.image_pull_policy:
            container["imagePullPolicy"] = component.image_pull_policy
        container["env"] = replace_all_envs(container.get("env"), component.envs)
        if component.args:
            container["args"] = replace_all_args(
                container.get("args") or [], component.args
            )
        log.debug3("Applied component overrides to [%s]", component.name)


## Implementation ##############################################################


def _describe(workload: dict) -> str:
    metadata = workload.get("metadata") or {}
    return f"{workload.get('kind', 'pod-template')}/{metadata.get('name', '')}"

"""
This module holds common functionality that the DeployManager implementations
can use to manage ownerReferences on deployed objects
"""

# First Party
import alog

# Local
from ..exceptions import assert_cluster
from .base import DeployManagerBase

log = alog.use_channel("OWNRF")


def update_owner_references(
    deploy_manager: DeployManagerBase,
    owner_cr: dict,
    child_obj: dict,
):
    """Fetch current ownerReferences and merge a reference for the owning CR
    into the child object.

    Kubernetes only honors owner references within a namespace, so
    cluster-scoped children and children in other namespaces (e.g. secrets
    copied into the observability namespace) are left untouched.
    """
    _validate_object_struct(owner_cr)
    _validate_object_struct(child_obj)

    kind = child_obj["kind"]
    api_version = child_obj["apiVersion"]
    name = child_obj["metadata"]["name"]
    namespace = child_obj["metadata"].get("namespace")
    owner_namespace = owner_cr["metadata"].get("namespace")
    if not namespace or namespace != owner_namespace:
        log.debug3(
            "Not adding owner ref to %s.%s/%s outside of %s",
            api_version,
            kind,
            name,
            owner_namespace,
        )
        return

    success, content = deploy_manager.get_object_current_state(
        kind=kind, name=name, api_version=api_version, namespace=namespace
    )
    assert_cluster(
        success, f"Failed to fetch current state of {api_version}.{kind}/{name}"
    )

    owner_refs = []
    if content is not None:
        owner_refs = content.get("metadata", {}).get("ownerReferences", [])
        log.debug3("Current owner refs: %s", owner_refs)

    owner_uid = owner_cr["metadata"].get("uid")
    if owner_uid not in [ref.get("uid") for ref in owner_refs]:
        log.debug2(
            "Adding CR owner reference for %s.%s/%s", api_version, kind, name
        )
        owner_refs.append(_make_owner_reference(owner_cr))

    log.debug4("Final owner refs: %s", owner_refs)
    child_obj["metadata"]["ownerReferences"] = owner_refs


## Implementation Details ######################################################


def _validate_object_struct(obj: dict):
    """Ensure that the required portions of an object are present (kind,
    apiVersion, metadata.name)
    """
    assert "kind" in obj, "Got object without 'kind'"
    assert "apiVersion" in obj, "Got object without 'apiVersion'"
    metadata = obj.get("metadata")
    assert isinstance(metadata, dict), "Got object with non-dict 'metadata'"
    assert "name" in metadata, "Got object without 'metadata.name'"


def _make_owner_reference(owner_cr: dict) -> dict:
    """Make an owner reference for the given CR instance

    Error Semantics: This function makes a best-effort and does not validate the
    content of the owner_cr, so the resulting ownerReference may contain None
    entries.
    """
    # NOTE: controller is not set. Only one owner may be the controller and
    #   the field only matters for adoption, not garbage collection.
    metadata = owner_cr.get("metadata", {})
    return {
        "apiVersion": owner_cr.get("apiVersion"),
        "kind": owner_cr.get("kind"),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "blockOwnerDeletion": True,
    }

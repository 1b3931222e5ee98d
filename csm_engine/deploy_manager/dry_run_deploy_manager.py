"""
The DryRunDeployManager implements the DeployManager interface but does not
actually interact with the cluster and instead holds the state of the cluster in
a local map.
"""

# Standard
from datetime import datetime
from threading import RLock
from typing import List, Optional, Tuple
import copy
import uuid

# First Party
import alog

# Local
from .base import DeployManagerBase
from .owner_references import update_owner_references

log = alog.use_channel("DRY-RUN")

# Lock to ensure disable/deploys are thread safe
DRY_RUN_CLUSTER_LOCK = RLock()


class DryRunDeployManager(DeployManagerBase):
    """
    Deploy manager which doesn't actually deploy!
    """

    def __init__(self, resources: Optional[List[dict]] = None, owner_cr=None):
        """Construct with an optional set of resources that are considered to
        already exist in the cluster

        Args:
            resources:  Optional[List[dict]]
                Pre-existing cluster content
            owner_cr:  Optional[dict]
                If given, deployed objects get an ownerReference to this CR
        """
        self._owner_cr = owner_cr
        self._cluster_content = {}
        self._deploy(resources or [], manage_owner_references=False)

    ## Interface ###############################################################

    def deploy(self, resource_definitions, manage_owner_references=True, **_):
        log.info("DRY RUN deploy")
        return self._deploy(
            resource_definitions, manage_owner_references=manage_owner_references
        )

    def disable(self, resource_definitions):
        log.info("DRY RUN disable")
        changed = False
        for resource in resource_definitions:
            api_version, kind, name, namespace = self._identifiers(resource)
            with DRY_RUN_CLUSTER_LOCK:
                entries = (
                    self._cluster_content.get(namespace, {})
                    .get(kind, {})
                    .get(api_version, {})
                )
                if name in entries:
                    log.debug2("DRY RUN delete [%s/%s/%s]", namespace, kind, name)
                    self._delete_key(namespace, kind, api_version, name)
                    changed = True
                else:
                    log.debug2(
                        "DRY RUN [%s/%s/%s] already absent", namespace, kind, name
                    )
        return True, changed

    def get_object_current_state(self, kind, name, namespace=None, api_version=None):
        log.debug(
            "DRY RUN get_object_current_state of [%s/%s] in [%s]", kind, name, namespace
        )
        matches = []
        kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
        for api_ver, entries in kind_entries.items():
            log.debug3("Checking api_version [%s // %s]", api_ver, api_version)
            if name in entries and (api_ver == api_version or api_version is None):
                matches.append(entries[name])
        if len(matches) == 1:
            return True, copy.deepcopy(matches[0])
        return True, None

    ## Dry Run Methods #########################################################

    def list_objects(self, kind: Optional[str] = None) -> List[dict]:
        """List deep copies of everything in the fake cluster, optionally
        filtered by kind
        """
        objects = []
        with DRY_RUN_CLUSTER_LOCK:
            for kinds in self._cluster_content.values():
                for obj_kind, versions in kinds.items():
                    if kind is not None and obj_kind != kind:
                        continue
                    for entries in versions.values():
                        objects.extend(copy.deepcopy(list(entries.values())))
        return objects

    ## Implementation Details ##################################################

    @staticmethod
    def _identifiers(resource: dict) -> Tuple[str, str, str, Optional[str]]:
        metadata = resource.get("metadata", {})
        return (
            resource.get("apiVersion"),
            resource.get("kind"),
            metadata.get("name"),
            metadata.get("namespace"),
        )

    def _delete_key(self, namespace, kind, api_version, name):
        del self._cluster_content[namespace][kind][api_version][name]
        if not self._cluster_content[namespace][kind][api_version]:
            del self._cluster_content[namespace][kind][api_version]
        if not self._cluster_content[namespace][kind]:
            del self._cluster_content[namespace][kind]
        if not self._cluster_content[namespace]:
            del self._cluster_content[namespace]

    def _deploy(self, resource_definitions, manage_owner_references=True):
        changes = False
        for resource in resource_definitions:
            resource = copy.deepcopy(resource)
            api_version, kind, name, namespace = self._identifiers(resource)
            log.debug(
                "DRY RUN deploy [%s/%s/%s/%s]", namespace, kind, api_version, name
            )
            log.debug4(resource)

            if self._owner_cr and manage_owner_references:
                log.debug2("Adding dry-run owner references")
                update_owner_references(self, self._owner_cr, resource)

            with DRY_RUN_CLUSTER_LOCK:
                entries = (
                    self._cluster_content.setdefault(namespace, {})
                    .setdefault(kind, {})
                    .setdefault(api_version, {})
                )
                current = copy.deepcopy(entries.get(name, {}))
                current_metadata = current.get("metadata", {})
                for generated in ["uid", "creationTimestamp", "resourceVersion"]:
                    current_metadata.pop(generated, None)
                changes = changes or (current != resource)

                existing_metadata = entries.get(name, {}).get("metadata", {})
                metadata = resource.setdefault("metadata", {})
                metadata["creationTimestamp"] = existing_metadata.get(
                    "creationTimestamp", datetime.now().isoformat()
                )
                metadata["uid"] = existing_metadata.get("uid", str(uuid.uuid4()))
                metadata["resourceVersion"] = str(
                    int(existing_metadata.get("resourceVersion", "0")) + 1
                )
                entries[name] = resource

        return True, changes

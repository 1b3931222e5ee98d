"""
This DeployManager is responsible for delegating cluster operations to the
openshift library. It is the one used when the engine is applying rendered
objects to a live cluster.
"""
# Standard
from collections import namedtuple
from typing import Callable, List, Optional, Tuple
import copy
import time

# Third Party
from openshift.dynamic import DynamicClient
from openshift.dynamic.apply import LAST_APPLIED_CONFIG_ANNOTATION, recursive_diff
from openshift.dynamic.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
    UnprocessibleEntityError,
)
from openshift.dynamic.resource import Resource
import kubernetes

# First Party
import alog

# Local
from .. import config
from ..exceptions import assert_cluster
from .base import DeployManagerBase
from .owner_references import update_owner_references

log = alog.use_channel("OSFTD")


class OpenshiftDeployManager(DeployManagerBase):
    """This DeployManager uses the openshift DynamicClient to interact with the
    cluster
    """

    def __init__(self, owner_cr: Optional[dict] = None):
        """
        Args:
            owner_cr:  Optional[dict]
                The dict content of the CR being reconciled. If given, deployed
                objects in its namespace will have an ownerReference added.
        """
        self._owner_cr = owner_cr
        log.debug("Initializing openshift client")
        self._client = None

    @property
    def client(self):
        """Lazy property access to the client"""
        if self._client is None:
            self._client = self._setup_client()
        return self._client

    @alog.logged_function(log.debug)
    def deploy(
        self,
        resource_definitions: List[dict],
        manage_owner_references: bool = True,
        retry_operation: bool = True,
        **_,
    ) -> Tuple[bool, bool]:
        """Deploy using the openshift client

        Args:
            resource_definitions:  list(dict)
                List of resource object dicts to apply to the cluster
            manage_owner_references:  bool
                If true, ownerReferences for the owning CR will be applied to
                the deployed object

        Returns:
            success:  bool
                True if deploy succeeded, False otherwise
            changed:  bool
                Whether or not the deployment resulted in changes
        """
        return self._retried_operation(
            resource_definitions,
            self._apply,
            max_retries=config.deploy_retries if retry_operation else 0,
            manage_owner_references=manage_owner_references,
        )

    @alog.logged_function(log.debug)
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Delete each resource, treating missing kinds and missing instances as
        success without change

        Args:
            resource_definitions:  list(dict)
                List of resource object dicts to remove from the cluster

        Returns:
            success:  bool
                True if delete succeeded, False otherwise
            changed:  bool
                Whether or not the delete resulted in changes
        """
        return self._retried_operation(
            resource_definitions,
            self._disable,
            max_retries=config.deploy_retries,
            manage_owner_references=False,
        )

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """Fetch the current state using calls directly to the api client

        Args:
            kind:  str
                The kind of the object ot fetch
            name:  str
                The full name of the object to fetch
            namespace:  Optional[str]
                The namespace to search for the object or None for no namespace
            api_version:  Optional[str]
                The api_version of the resource kind to fetch

        Returns:
            success:  bool
                Whether or not the state fetch operation succeeded
            current_state:  dict or None
                The dict representation of the current object's configuration,
                or None if not present
        """
        resources = self._get_resource_handle(kind, api_version)
        if not resources:
            return True, None

        if not namespace:
            resources.namespaced = False

        try:
            resource = resources.get(name=name, namespace=namespace)
        except ForbiddenError:
            log.debug(
                "Fetching objects of kind [%s] forbidden in namespace [%s]",
                kind,
                namespace,
            )
            return False, None
        except NotFoundError:
            log.debug(
                "No object named [%s/%s] found in namespace [%s]", kind, name, namespace
            )
            return True, None

        return True, resource.to_dict()

    ## Implementation Helpers ##################################################

    @staticmethod
    def _setup_client():
        """Create a DynamicClient that will work based on where the engine is
        running
        """
        try:
            log.debug2("Running with in-cluster config")
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)
            api_client = kubernetes.client.ApiClient(kube_config)
            return DynamicClient(api_client)

        except kubernetes.config.ConfigException:
            log.debug2("Running with out-of-cluster config")
            return DynamicClient(kubernetes.config.new_client_from_config())

    @staticmethod
    def _strip_last_applied(resource_definitions):
        """Make sure that the last-applied annotation is not present in any of
        the resources. This can lead to recursive nesting!
        """
        for resource_definition in resource_definitions:
            annotations = resource_definition.get("metadata", {}).get("annotations")
            if annotations and LAST_APPLIED_CONFIG_ANNOTATION in annotations:
                log.debug3("Removing [%s]", LAST_APPLIED_CONFIG_ANNOTATION)
                del annotations[LAST_APPLIED_CONFIG_ANNOTATION]
                if not annotations:
                    del resource_definition["metadata"]["annotations"]

    def _get_resource_handle(
        self, kind: str, api_version: Optional[str]
    ) -> Optional[Resource]:
        """Get the openshift resource handle for a specified kind and api_version"""
        resources = None
        try:
            resources = self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError):
            log.debug(
                "No objects of kind [%s] found or multiple objects matching "
                "request found",
                kind,
            )
        return resources

    def _retried_operation(
        self,
        resource_definitions,
        operation,
        max_retries,
        manage_owner_references,
    ):
        """Shared wrapper for executing a client operation with retries"""
        assert isinstance(
            resource_definitions, list
        ), "Programming Error: resource_definitions is not a list"
        log.debug3("Running operation with %d retries", max_retries)

        if not resource_definitions:
            log.debug("Nothing to do for an empty list of resources")
            return True, False

        self._strip_last_applied(resource_definitions)
        if manage_owner_references and self._owner_cr:
            for resource_definition in resource_definitions:
                update_owner_references(self, self._owner_cr, resource_definition)

        # Run each resource individually so that we can track partial completion
        success = True
        changed = False
        for resource_definition in resource_definitions:
            try:
                changed = (
                    self._run_individual_operation_with_retries(
                        operation,
                        max_retries,
                        resource_definition=resource_definition,
                    )
                    or changed
                )

            # Later resources may depend on earlier ones, so stop at the first
            # failure
            except Exception as err:  # pylint: disable=broad-except
                log.warning(
                    "Operation [%s] failed to execute: %s",
                    operation,
                    err,
                    exc_info=True,
                )
                success = False
                break

        return success, changed

    def _run_individual_operation_with_retries(
        self,
        operation: Callable,
        remaining_retries: int,
        resource_definition: dict,
    ):
        """Helper to execute a single operation, retrying on conflicts

        Args:
            operation:  Callable
                The operation function to run
            remaining_retries:  int
                The number of remaining retries
            resource_definition:  dict
                The dict representation of the resource being applied

        Returns:
            changed:  bool
                Whether or not the operation resulted in meaningful change
        """
        try:
            return operation(resource_definition=resource_definition)
        except ConflictError as err:
            log.debug2("Handling ConflictError: %s", err)
            if not remaining_retries:
                raise

            backoff_duration = config.retry_backoff_base_seconds * (
                config.deploy_retries - remaining_retries + 1
            )
            log.debug3("Retrying in %fs", backoff_duration)
            time.sleep(backoff_duration)

            # Pick up the current resourceVersion so the retry is not rejected
            # for the same conflict
            res_id = self._get_resource_identifiers(resource_definition)
            success, content = self.get_object_current_state(
                kind=res_id.kind,
                name=res_id.name,
                namespace=res_id.namespace,
                api_version=res_id.api_version,
            )
            assert_cluster(
                success and content is not None,
                f"Failed to fetch updated resourceVersion for {res_id}",
            )
            updated_resource_version = content.get("metadata", {}).get(
                "resourceVersion"
            )
            assert_cluster(
                updated_resource_version is not None,
                "No updated resource version found!",
            )
            resource_definition.setdefault("metadata", {})[
                "resourceVersion"
            ] = updated_resource_version
            return self._run_individual_operation_with_retries(
                operation, remaining_retries - 1, resource_definition
            )

    @classmethod
    def _manifest_diff(cls, manifest_a, manifest_b) -> bool:
        """Compare two manifests for meaningful diff while ignoring fields that
        change on every write
        """
        manifest_a = copy.deepcopy(manifest_a)
        manifest_b = copy.deepcopy(manifest_b)
        for metadata_field in [
            "resourceVersion",
            "generation",
            "managedFields",
            "uid",
            "creationTimestamp",
        ]:
            manifest_a.get("metadata", {}).pop(metadata_field, None)
            manifest_b.get("metadata", {}).pop(metadata_field, None)
        cls._strip_last_applied([manifest_a, manifest_b])
        change = bool(recursive_diff(manifest_a, manifest_b))
        log.debug2("Found change? %s", change)
        return change

    # Internal struct to hold the key resource identifier elements
    _ResourceIdentifiers = namedtuple(
        "ResourceIdentifiers", ["api_version", "kind", "name", "namespace"]
    )

    @classmethod
    def _get_resource_identifiers(cls, resource_definition):
        """Helper for getting the required parts of a single resource definition"""
        api_version = resource_definition.get("apiVersion")
        kind = resource_definition.get("kind")
        name = resource_definition.get("metadata", {}).get("name")
        namespace = resource_definition.get("metadata", {}).get("namespace")
        assert None not in [
            api_version,
            kind,
            name,
        ], "Cannot apply resource without apiVersion, kind or name"
        return cls._ResourceIdentifiers(api_version, kind, name, namespace)

    def _resource_handle_for(self, res_id) -> Resource:
        resource_handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {res_id}",
        )
        if not res_id.namespace:
            resource_handle.namespaced = False
        return resource_handle

    ################
    ## Operations ##
    ################

    def _replace_resource(self, resource_definition: dict) -> dict:
        """Forcibly replace a resource on the cluster"""
        res_id = self._get_resource_identifiers(resource_definition)
        resource_definition["metadata"]["managedFields"] = None
        log.debug2("Attempting to put %s", res_id)
        return (
            self._resource_handle_for(res_id)
            .replace(
                resource_definition,
                name=res_id.name,
                namespace=res_id.namespace,
                field_manager=config.field_manager,
            )
            .to_dict()
        )

    def _apply_resource(self, resource_definition: dict) -> dict:
        """Server side apply a single resource, taking ownership of conflicting
        fields if another manager holds them
        """
        res_id = self._get_resource_identifiers(resource_definition)
        resource_definition["metadata"]["managedFields"] = None
        resource_handle = self._resource_handle_for(res_id)
        log.debug2("Attempting to apply %s", res_id)
        try:
            return resource_handle.server_side_apply(
                resource_definition,
                name=res_id.name,
                namespace=res_id.namespace,
                field_manager=config.field_manager,
            ).to_dict()
        except ConflictError:
            log.debug("Overriding field manager conflict for %s", res_id)
            return resource_handle.server_side_apply(
                resource_definition,
                name=res_id.name,
                namespace=res_id.namespace,
                field_manager=config.field_manager,
                force_conflicts=True,
            ).to_dict()

    def _apply(self, resource_definition):
        """Create or update a single resource

        Returns:
            changed:  bool
                Whether or not the apply resulted in a meaningful change
        """
        res_id = self._get_resource_identifiers(resource_definition)
        success, current = self.get_object_current_state(
            kind=res_id.kind,
            name=res_id.name,
            namespace=res_id.namespace,
            api_version=res_id.api_version,
        )
        assert_cluster(success, f"Failed to fetch current state for {res_id}")
        current = current or {}

        if not self._manifest_diff(current, resource_definition):
            log.debug2("No change for %s", res_id)
            return False

        try:
            apply_res = self._apply_resource(resource_definition)
        except UnprocessibleEntityError as err:
            log.debug3("Caught 422 error: %s", err, exc_info=True)
            if not (config.deploy_unprocessable_put_fallback and current):
                raise
            log.debug("Falling back to PUT on 422: %s", err)
            apply_res = self._replace_resource(resource_definition)

        # The applied manifest does not always round trip (e.g. removed fields
        # are not deleted), so recompute the change against the result
        return self._manifest_diff(current, apply_res)

    def _disable(self, resource_definition):
        """Delete a single resource if it exists

        Returns:
            changed:  bool
                Whether or not the disable resulted in a meaningful change
        """
        res_id = self._get_resource_identifiers(resource_definition)
        log.debug2("Fetching resource [%s/%s]", res_id.api_version, res_id.kind)
        try:
            resource_handle = self.client.resources.get(
                api_version=res_id.api_version, kind=res_id.kind
            )
            if not res_id.namespace:
                resource_handle.namespaced = False
            log.debug2("Attempting to delete %s", res_id)
            resource_handle.delete(name=res_id.name, namespace=res_id.namespace)
            return True

        # If the kind or instance is not found, that's a success without change
        except (ResourceNotFoundError, NotFoundError) as err:
            log.debug2("Valid error caught when disabling %s: %s", res_id, err)
            return False

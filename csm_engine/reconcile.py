"""
The Apply/Delete Reconciler walks a module's rendered object set in order and
hands each object to the deploy manager. There is no transactional guarantee:
objects applied before a failure are left in place and a later pass converges.
"""

# Standard
from typing import Iterable, List, Union

# First Party
import alog

# Local
from .deploy_manager import DeployManagerBase
from .exceptions import ApplyError, DeleteError
from .managed_object import ManagedObject

log = alog.use_channel("RCNCL")


def reconcile_objects(
    objects: Iterable[Union[ManagedObject, dict]],
    is_deleting: bool,
    deploy_manager: DeployManagerBase,
) -> bool:
    """Apply or delete each object in list order, stopping at the first failure

    Args:
        objects:  Iterable[Union[ManagedObject, dict]]
            The ordered objects of one module
        is_deleting:  bool
            If true, delete the objects. Objects that are already absent count
            as deleted.
        deploy_manager:  DeployManagerBase
            The create-or-update / delete capability

    Returns:
        changed:  bool
            Whether any object in the cluster changed

    Raises:
        ApplyError: naming the first object that could not be applied
        DeleteError: naming the first object that could not be deleted
    """
    changed = False
    objects = _as_managed_objects(objects)
    verb = "delete" if is_deleting else "apply"
    log.debug("Reconciling %d objects with %s", len(objects), verb)
    for obj in objects:
        log.debug2("Running %s for %s", verb, obj)
        if is_deleting:
            success, obj_changed = deploy_manager.disable([obj.definition])
        else:
            success, obj_changed = deploy_manager.deploy([obj.definition])
        if not success:
            log.warning("Failed to %s %s", verb, obj)
            error_type = DeleteError if is_deleting else ApplyError
            raise error_type(f"failed to {verb} {obj}")
        changed = changed or obj_changed
    return changed


def _as_managed_objects(
    objects: Iterable[Union[ManagedObject, dict]]
) -> List[ManagedObject]:
    return [
        obj if isinstance(obj, ManagedObject) else ManagedObject(obj)
        for obj in objects
    ]

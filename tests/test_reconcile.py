"""
Tests for the apply/delete reconciler
"""

# Third Party
import pytest

# Local
from csm_engine.exceptions import ApplyError, DeleteError
from csm_engine.managed_object import ManagedObject
from csm_engine.reconcile import reconcile_objects
from csm_engine.test_helpers.helpers import (
    TEST_NAMESPACE,
    FailOnce,
    MockDeployManager,
    make_config_map,
)

## Helpers #####################################################################


def make_objects(*names):
    return [make_config_map(name) for name in names]


## Apply #######################################################################


def test_apply_creates_in_order():
    dm = MockDeployManager()
    objects = make_objects("a", "b", "c")
    assert reconcile_objects(objects, False, dm)
    deployed = [call.args[0][0] for call in dm.deploy.call_args_list]
    assert [obj["metadata"]["name"] for obj in deployed] == ["a", "b", "c"]
    for name in ["a", "b", "c"]:
        assert dm.has_obj("ConfigMap", name, TEST_NAMESPACE, "v1")


def test_apply_twice_converges():
    """A second apply of the same objects changes nothing"""
    dm = MockDeployManager()
    objects = [ManagedObject(obj) for obj in make_objects("a", "b")]
    assert reconcile_objects(objects, False, dm)
    assert not reconcile_objects(objects, False, dm)


def test_apply_stops_at_first_failure():
    """Objects before the failure stay applied and later ones are not tried"""
    dm = MockDeployManager(deploy_fail=FailOnce((False, False), fail_number=2))
    with pytest.raises(ApplyError) as exc_info:
        reconcile_objects(make_objects("a", "b", "c"), False, dm)
    assert "b" in str(exc_info.value)
    assert dm.deploy.call_count == 2
    assert dm.has_obj("ConfigMap", "a", TEST_NAMESPACE, "v1")
    assert not dm.has_obj("ConfigMap", "b", TEST_NAMESPACE, "v1")
    assert not dm.has_obj("ConfigMap", "c", TEST_NAMESPACE, "v1")


## Delete ######################################################################


def test_delete_never_created_succeeds():
    """Deleting objects that were never created is a success without change"""
    dm = MockDeployManager()
    assert not reconcile_objects(make_objects("a", "b"), True, dm)
    assert dm.disable.call_count == 2


def test_delete_removes_present_objects():
    objects = make_objects("a", "b")
    dm = MockDeployManager(resources=objects[:1])
    assert reconcile_objects(objects, True, dm)
    assert not dm.has_obj("ConfigMap", "a", TEST_NAMESPACE, "v1")


def test_delete_failure():
    dm = MockDeployManager(disable_fail=True)
    with pytest.raises(DeleteError):
        reconcile_objects(make_objects("a", "b"), True, dm)
    assert dm.disable.call_count == 1


def test_empty_object_set():
    dm = MockDeployManager()
    assert not reconcile_objects([], False, dm)
    assert not reconcile_objects([], True, dm)
    dm.deploy.assert_not_called()

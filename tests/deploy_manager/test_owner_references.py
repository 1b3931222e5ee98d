"""
Test the implementations of the shared owner reference management
"""

# Standard
import copy

# Third Party
import pytest

# First Party
import alog

# Local
from csm_engine.deploy_manager.owner_references import (
    _make_owner_reference,
    update_owner_references,
)
from csm_engine.exceptions import ClusterError
from csm_engine.test_helpers.helpers import TEST_NAMESPACE, MockDeployManager, setup_cr

log = alog.use_channel("TEST")

SAMPLE_OWNER = setup_cr()
OTHER_NAMESPACE = "other-namespace"


def sample_object(namespace=TEST_NAMESPACE, kind="Secret"):
    obj = {
        "kind": kind,
        "apiVersion": "v1",
        "metadata": {"name": "child"},
    }
    if namespace is not None:
        obj["metadata"]["namespace"] = namespace
    return obj


def remove_key(obj, key):
    parts = key.split(".")
    dct = obj
    for part in parts[:-1]:
        dct = dct[part]
    del dct[parts[-1]]
    return obj


## update_owner_references #####################################################


def test_add_new_owner_ref():
    """Test that a ref to an object with none present is added"""
    dm = MockDeployManager()
    obj = sample_object()
    update_owner_references(dm, SAMPLE_OWNER, obj)
    assert obj["metadata"]["ownerReferences"] == [_make_owner_reference(SAMPLE_OWNER)]


def test_skip_namespace_mismatch():
    """Objects outside of the owner's namespace, like secrets copied into the
    observability namespace, do not get an owner reference
    """
    dm = MockDeployManager()
    obj = sample_object(namespace=OTHER_NAMESPACE)
    update_owner_references(dm, SAMPLE_OWNER, obj)
    assert "ownerReferences" not in obj["metadata"]
    dm.get_object_current_state.assert_not_called()


def test_skip_cluster_scoped():
    dm = MockDeployManager()
    obj = sample_object(namespace=None, kind="ClusterRole")
    update_owner_references(dm, SAMPLE_OWNER, obj)
    assert "ownerReferences" not in obj["metadata"]


def test_no_duplicate():
    """Test that an object with an existing ref for the owner does not
    duplicate the existing ref
    """
    obj = sample_object()
    cluster_obj = copy.deepcopy(obj)
    cluster_obj["metadata"]["ownerReferences"] = [_make_owner_reference(SAMPLE_OWNER)]
    dm = MockDeployManager(resources=[cluster_obj])
    update_owner_references(dm, SAMPLE_OWNER, obj)
    assert obj["metadata"]["ownerReferences"] == [_make_owner_reference(SAMPLE_OWNER)]


def test_external_preserved():
    """Test that an object with an existing ref for a different owner adds the
    new reference without removing the old one
    """
    external_ref = _make_owner_reference(
        setup_cr(name="other-owner", metadata={"uid": "67890"})
    )
    obj = sample_object()
    cluster_obj = copy.deepcopy(obj)
    cluster_obj["metadata"]["ownerReferences"] = [external_ref]
    dm = MockDeployManager(resources=[cluster_obj])
    update_owner_references(dm, SAMPLE_OWNER, obj)
    assert obj["metadata"]["ownerReferences"] == [
        external_ref,
        _make_owner_reference(SAMPLE_OWNER),
    ]


@pytest.mark.parametrize("key", ["kind", "apiVersion", "metadata.name"])
def test_owner_missing_keys(key):
    """Test that when the owner is missing required keys, an assertion is hit"""
    log.debug("Trying without [%s]", key)
    bad_owner = remove_key(copy.deepcopy(SAMPLE_OWNER), key)
    with pytest.raises(AssertionError):
        update_owner_references(MockDeployManager(), bad_owner, sample_object())


@pytest.mark.parametrize("key", ["kind", "apiVersion", "metadata.name"])
def test_child_missing_keys(key):
    """Test that when the child is missing required keys, an assertion is hit"""
    bad_child = remove_key(sample_object(), key)
    with pytest.raises(AssertionError):
        update_owner_references(MockDeployManager(), SAMPLE_OWNER, bad_child)


def test_lookup_cluster_error():
    """Test that when the deploy manager fails to look up the object, a
    ClusterError is raised
    """
    dm = MockDeployManager(get_state_fail=True)
    with pytest.raises(ClusterError):
        update_owner_references(dm, SAMPLE_OWNER, sample_object())


## _make_owner_reference #######################################################


def test_make_owner_reference_required_keys():
    """Make sure the shape of the owner reference looks right"""
    ref = _make_owner_reference(SAMPLE_OWNER)
    assert ref["apiVersion"] == "storage.dell.com/v1"
    assert ref["kind"] == "ContainerStorageModule"
    assert ref["name"] == SAMPLE_OWNER["metadata"]["name"]
    assert ref["uid"] == SAMPLE_OWNER["metadata"]["uid"]


def test_make_owner_block_owner_deletion():
    """Make sure that blockOwnerDeletion is set"""
    assert _make_owner_reference(SAMPLE_OWNER)["blockOwnerDeletion"]


def test_make_owner_not_controller():
    """Make sure that controller is not set"""
    assert "controller" not in _make_owner_reference(SAMPLE_OWNER)

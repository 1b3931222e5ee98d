"""Tests for the DryRunDeployManager

NOTE: The majority of the functionality is exercised by the reconcile and
    engine tests, so the tests here only test elements that are particularly
    delicate and/or not covered elsewhere.
"""

# Local
from csm_engine.deploy_manager import DryRunDeployManager
from csm_engine.test_helpers.helpers import TEST_NAMESPACE, make_config_map, setup_cr

## Helpers #####################################################################


def make_obj(kind="Foo", name="foobar", namespace=TEST_NAMESPACE, spec=None):
    obj = {
        "apiVersion": "foo.bar/v1",
        "kind": kind,
        "metadata": {"name": name},
        "spec": spec or {"a": 1},
    }
    if namespace is not None:
        obj["metadata"]["namespace"] = namespace
    return obj


## Tests #######################################################################


def test_deploy_then_get():
    dm = DryRunDeployManager()
    assert dm.deploy([make_obj()]) == (True, True)
    success, content = dm.get_object_current_state(
        "Foo", "foobar", TEST_NAMESPACE, "foo.bar/v1"
    )
    assert success
    assert content["spec"] == {"a": 1}
    assert content["metadata"]["resourceVersion"] == "1"
    assert content["metadata"]["uid"]


def test_redeploy_unchanged():
    """Deploying the same content again reports no change and keeps the
    generated metadata
    """
    dm = DryRunDeployManager()
    dm.deploy([make_obj()])
    uid = dm.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)[1][
        "metadata"
    ]["uid"]
    assert dm.deploy([make_obj()]) == (True, False)
    content = dm.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)[1]
    assert content["metadata"]["uid"] == uid
    assert content["metadata"]["resourceVersion"] == "2"


def test_redeploy_changed():
    dm = DryRunDeployManager()
    dm.deploy([make_obj()])
    assert dm.deploy([make_obj(spec={"a": 2})]) == (True, True)


def test_initial_resources_present():
    dm = DryRunDeployManager(resources=[make_config_map("existing")])
    _, content = dm.get_object_current_state("ConfigMap", "existing", TEST_NAMESPACE)
    assert content["data"] == {"config.yaml": "key: value"}


def test_get_missing_object():
    dm = DryRunDeployManager()
    assert dm.get_object_current_state("Foo", "missing", TEST_NAMESPACE) == (
        True,
        None,
    )


def test_get_returns_copy():
    dm = DryRunDeployManager()
    dm.deploy([make_obj()])
    _, content = dm.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)
    content["spec"]["a"] = 100
    _, content = dm.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)
    assert content["spec"]["a"] == 1


def test_disable_present_and_absent():
    """Removing an absent object is a success without change"""
    dm = DryRunDeployManager()
    dm.deploy([make_obj()])
    assert dm.disable([make_obj()]) == (True, True)
    assert dm.disable([make_obj()]) == (True, False)
    assert dm.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)[1] is None


def test_cluster_scoped_objects():
    dm = DryRunDeployManager()
    dm.deploy([make_obj(kind="Bar", namespace=None)])
    assert dm.get_object_current_state("Bar", "foobar")[1] is not None
    assert dm.get_object_current_state("Bar", "foobar", TEST_NAMESPACE)[1] is None


def test_list_objects():
    dm = DryRunDeployManager(resources=[make_config_map("a"), make_config_map("b")])
    dm.deploy([make_obj()])
    assert len(dm.list_objects()) == 3
    assert sorted(obj["metadata"]["name"] for obj in dm.list_objects("ConfigMap")) == [
        "a",
        "b",
    ]


def test_owner_references_added():
    owner = setup_cr()
    dm = DryRunDeployManager(owner_cr=owner)
    dm.deploy([make_obj()])
    dm.deploy([make_obj(name="other-ns", namespace="elsewhere")])
    owned = dm.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)[1]
    assert [ref["uid"] for ref in owned["metadata"]["ownerReferences"]] == [
        owner["metadata"]["uid"]
    ]
    other = dm.get_object_current_state("Foo", "other-ns", "elsewhere")[1]
    assert "ownerReferences" not in other["metadata"]


def test_owner_references_skipped():
    dm = DryRunDeployManager(owner_cr=setup_cr())
    dm.deploy([make_obj()], manage_owner_references=False)
    content = dm.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)[1]
    assert "ownerReferences" not in content["metadata"]

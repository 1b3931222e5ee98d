"""
Tests for the shared precheck gate
"""

# Third Party
import pytest

# Local
from csm_engine.exceptions import (
    MissingPrerequisiteError,
    UnsupportedDriverError,
    UnsupportedVersionError,
)
from csm_engine.precheck import PrecheckValidator
from csm_engine.registry import DriverType, ModuleName
from csm_engine.test_helpers.helpers import (
    TEST_CONFIG_ROOT,
    TEST_NAMESPACE,
    MockDeployManager,
    make_config_map,
    make_secrets,
)

## Helpers #####################################################################


def make_validator(module_name=ModuleName.AUTHORIZATION, **kwargs):
    return PrecheckValidator(module_name, MockDeployManager(**kwargs), TEST_CONFIG_ROOT)


## check_driver ################################################################


def test_check_driver_supported():
    param = make_validator().check_driver(DriverType.ISILON)
    assert param.plugin_identifier == "powerscale"


def test_check_driver_unsupported():
    with pytest.raises(UnsupportedDriverError) as exc_info:
        make_validator(ModuleName.REVERSE_PROXY).check_driver(DriverType.POWERFLEX)
    assert "csireverseproxy" in str(exc_info.value)
    assert "powerflex" in str(exc_info.value)


## check_version ###############################################################


def test_check_version_empty_is_not_checked():
    make_validator().check_version("")
    make_validator().check_version(None)


def test_check_version_unknown():
    with pytest.raises(UnsupportedVersionError):
        make_validator(ModuleName.REPLICATION).check_version("v0.0.1")


## require_resources ###########################################################


def test_require_resources_all_present():
    names = ["a", "b"]
    validator = make_validator(resources=make_secrets(*names))
    validator.require_resources(names, TEST_NAMESPACE)


def test_require_resources_names_first_missing():
    """The first missing resource is named in the error"""
    validator = make_validator(resources=make_secrets("a"))
    with pytest.raises(MissingPrerequisiteError) as exc_info:
        validator.require_resources(["a", "b", "c"], TEST_NAMESPACE)
    assert exc_info.value.resource_name == "b"
    assert "b" in str(exc_info.value)
    assert not exc_info.value.is_fatal_error


def test_require_resources_checks_namespace():
    validator = make_validator(resources=make_secrets("a", namespace="elsewhere"))
    with pytest.raises(MissingPrerequisiteError):
        validator.require_resources(["a"], TEST_NAMESPACE)


def test_require_resources_config_map_kind():
    validator = make_validator(resources=[make_config_map("cm")])
    validator.require_resources(["cm"], TEST_NAMESPACE, kind="ConfigMap")
    with pytest.raises(MissingPrerequisiteError) as exc_info:
        validator.require_resources(["cm"], TEST_NAMESPACE)
    assert exc_info.value.resource_kind == "Secret"


def test_require_resources_failed_lookup_is_skipped():
    """A lookup that fails outright does not block the module"""
    validator = make_validator(get_state_fail=True)
    validator.require_resources(["a"], TEST_NAMESPACE)

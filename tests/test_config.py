"""
Tests for the library config module

NOTE: Python makes it hard to change env vars in a way that will effect import
    time, so we're relying on the fact that aconfig is well tested and not
    actually validating the env-var override behavior!
"""

# Standard
import os

# Third Party
import pytest

# First Party
import aconfig

# Local
from csm_engine import config


def test_config_keys():
    """Make sure that the expected keys are present"""
    assert isinstance(config.deploy_retries, int)
    assert isinstance(config.observability_namespace, str)
    assert os.path.isabs(config.config_directory)


def test_config_unknown_key():
    with pytest.raises(AttributeError):
        config.not_a_config_key  # pylint: disable=pointless-statement


def test_shipped_config_is_valid():
    assert not config.validation.get_invalid_params(
        config.library_config, config.config.validation_config
    )


########################
## get_invalid_params ##
########################


def test_get_invalid_params_all_valid_params():
    assert not config.validation.get_invalid_params(
        config=aconfig.Config({"key": 1}),
        validation_config=aconfig.Config({"key": {"type": "int", "min": 0, "max": 1}}),
    )


def test_get_invalid_params_some_invalid_params():
    """Only the invalid parameters are returned"""
    assert config.validation.get_invalid_params(
        config=aconfig.Config({"key": 3, "str": "foo"}),
        validation_config=aconfig.Config(
            {
                "key": {"type": "int", "min": 0, "max": 1},
                "str": {"type": "str", "min_len": 1},
            },
        ),
    ) == ["key"]


def test_get_invalid_params_nested():
    assert config.validation.get_invalid_params(
        config=aconfig.Config({"outer": {"inner": "x"}}),
        validation_config=aconfig.Config(
            {"outer": {"inner": {"type": "enum", "values": ["a", "b"]}}}
        ),
    ) == ["outer.inner"]


#####################
## parameter types ##
#####################


def test_number_parameter():
    ParamType = config.validation._NumberParameter

    # Valid Cases
    assert ParamType().validate(1)
    assert ParamType().validate(1.2)
    assert ParamType(min=0).validate(1)
    assert ParamType(max=1).validate(0.5)
    assert ParamType(optional=True).validate(None)

    # Invalid Cases
    assert not ParamType().validate("not a number")
    assert not ParamType().validate(True)
    assert not ParamType(min=0).validate(-1)
    assert not ParamType(max=1).validate(1.5)
    assert not ParamType(optional=False).validate(None)


def test_int_parameter():
    ParamType = config.validation._IntParameter

    # Valid Cases
    assert ParamType().validate(1)
    assert ParamType(min=0).validate(1)
    assert ParamType(max=1).validate(1)

    # Invalid Cases
    assert not ParamType().validate(1.2)
    assert not ParamType().validate(False)
    assert not ParamType(min=0).validate(-1)


def test_str_parameter():
    ParamType = config.validation._StrParameter

    # Valid Cases
    assert ParamType().validate("test")
    assert ParamType(min_len=1).validate("test")
    assert ParamType(max_len=4).validate("test")
    assert ParamType(optional=True).validate(None)

    # Invalid Cases
    assert not ParamType().validate(1)
    assert not ParamType().validate(b"test")
    assert not ParamType(min_len=1).validate("")
    assert not ParamType(max_len=3).validate("test")


def test_bool_parameter():
    ParamType = config.validation._BoolParameter

    assert ParamType().validate(True)
    assert ParamType().validate(False)
    assert not ParamType().validate(1)
    assert not ParamType().validate("true")


def test_enum_parameter():
    ParamType = config.validation._EnumParameter

    # Invalid Construction
    with pytest.raises(AssertionError):
        ParamType(values=[])
    with pytest.raises(AssertionError):
        ParamType(values="test")

    assert ParamType(values=["info", "debug"]).validate("info")
    assert not ParamType(values=["info", "debug"]).validate("loud")
    assert ParamType(values=["info"], optional=True).validate(None)


#############
## factory ##
#############


@pytest.mark.parametrize(
    ["param_args", "param_type"],
    [
        ({"type": "number"}, "_NumberParameter"),
        ({"type": "int", "min": 1}, "_IntParameter"),
        ({"type": "str", "min_len": 1}, "_StrParameter"),
        ({"type": "bool"}, "_BoolParameter"),
        ({"type": "enum", "values": ["a"]}, "_EnumParameter"),
    ],
)
def test_construct_parameter_known_types(param_args, param_type):
    assert isinstance(
        config.validation._construct_parameter(param_args),
        getattr(config.validation, param_type),
    )


def test_construct_parameter_bad_args():
    with pytest.raises(TypeError):
        config.validation._construct_parameter({"type": "number", "foo": "bar"})
    with pytest.raises(TypeError):
        config.validation._construct_parameter({"type": "enum"})


def test_construct_parameter_unknown_type():
    assert config.validation._construct_parameter({"type": "foobar"}) is None


def test_parse_validation_config_nested_type_key():
    """A nested key named 'type' that is not a parameter type is recursed
    into
    """
    assert list(
        config.validation._parse_validation_config(
            aconfig.Config({"foo": {"type": {"baz": {"type": "int"}}}})
        ).keys()
    ) == ["foo.type.baz"]

"""
Common utilities shared across the engine
"""

# Standard
from typing import Any, Iterable, Optional

# First Party
import alog

# Local
from . import constants
from .exceptions import ConfigError

log = alog.use_channel("CSUTL")

# Sentinel for missing dict values
__MISSING__ = "__MISSING__"

## Dicts #######################################################################


def nested_get(dct: dict, key: str, dflt=None) -> Any:
    """Helper to get values from a dict using 'foo.bar' key notation

    Args:
        dct:  dict
            The dict to read from
        key:  str
            Key that may contain '.' notation indicating dict nesting

    Returns:
        val:  Any
            Whatever is found at the given key or dflt if the key is not found.
            This includes missing intermediate dicts.
    """
    parts = key.split(constants.NESTED_DICT_DELIM)
    for i, part in enumerate(parts[:-1]):
        dct = dct.get(part, __MISSING__)
        if dct is __MISSING__ or dct is None:
            return dflt
        if not isinstance(dct, dict):
            key_prefix = constants.NESTED_DICT_DELIM.join(parts[: i + 1])
            raise TypeError(f"Intermediate key {key_prefix} is not a dict")
    return dct.get(parts[-1], dflt)


## Named entries ###############################################################


def find_named(items: Optional[Iterable[dict]], name: str) -> Optional[dict]:
    """Get the first dict in a list of named entries (containers, volumes, env
    vars) with the given name, or None
    """
    for item in items or []:
        if item.get("name") == name:
            return item
    return None


## Strings #####################################################################

_TRUE_STRINGS = ["1", "t", "T", "TRUE", "true", "True"]
_FALSE_STRINGS = ["0", "f", "F", "FALSE", "false", "False"]


def parse_bool(value: str, name: str = "value") -> bool:
    """Parse a boolean from one of the string spellings accepted in custom
    resource env values

    Args:
        value:  str
            The string to parse
        name:  str
            The name of the field being parsed, used in the error message

    Returns:
        parsed:  bool
            The parsed value

    Raises:
        ConfigError: if the value is not a recognized boolean spelling
    """
    if isinstance(value, bool):
        return value
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    log.debug3("Unrecognized boolean [%s] for %s", value, name)
    raise ConfigError(f"{value} is an invalid value for {name}")

"""
This module loads the library config at import time, validates it and does the
initial log config
"""

# Standard
import os

# First Party
import aconfig
import alog

# Local
from .validation import get_invalid_params

_CONFIG_DIR = os.path.dirname(__file__)


def _load_yaml_config(file_name: str, override_env_vars: bool) -> aconfig.Config:
    """Load one of the yaml files that ship beside this module"""
    return aconfig.Config.from_yaml(
        os.path.join(_CONFIG_DIR, file_name),
        override_env_vars=override_env_vars,
    )


# The library config allows env overrides so that a deployed engine can point
# at a mounted template store. The validation file is static.
library_config = _load_yaml_config("config.yaml", override_env_vars=True)
validation_config = _load_yaml_config("config_validation.yaml", False)

invalid_params = get_invalid_params(library_config, validation_config)
assert (
    not invalid_params
), f"Library configuration found invalid values: {invalid_params}"

# Template paths are always resolved against an absolute root
library_config.config_directory = os.path.abspath(
    os.path.expanduser(library_config.config_directory)
)

alog.configure(
    default_level=library_config.log_level,
    filters=library_config.log_filters,
    formatter="json" if library_config.log_json else "pretty",
    thread_id=library_config.log_thread_id,
)

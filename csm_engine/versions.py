"""
The version resolver decides which versioned template directory a module is
rendered from. The set of subdirectories under moduleconfig/<module>/ is the
authoritative list of supported versions.
"""

# Standard
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
import os

# Third Party
import yaml

# First Party
import alog

# Local
from . import constants
from .exceptions import (
    ConfigError,
    DefaultVersionNotFoundError,
    TemplateIOError,
    UnsupportedVersionError,
)
from .registry import DriverType, ModuleName, canonical_driver_type

log = alog.use_channel("VRSON")


@dataclass(frozen=True)
class VersionSpec:
    """A resolved (module, version) pair and any image overrides shipped with
    that version
    """

    module: ModuleName
    version: str
    images: Dict[str, str] = field(default_factory=dict, compare=False)


## Public ######################################################################


def module_dir(module_name: ModuleName, config_root: str) -> str:
    """Path to the directory holding every version of a module's templates"""
    return os.path.join(
        config_root, constants.MODULE_CONFIG_DIR, module_name.template_dir
    )


def list_versions(module_name: ModuleName, config_root: str) -> List[str]:
    """List the versions shipped for a module

    Args:
        module_name:  ModuleName
            The module to inspect
        config_root:  str
            Root of the template store

    Returns:
        versions:  List[str]
            Sorted subdirectory names of the module's template directory

    Raises:
        TemplateIOError: if the module directory cannot be read
    """
    path = module_dir(module_name, config_root)
    try:
        entries = os.listdir(path)
    except OSError as err:
        raise TemplateIOError(
            f"failed to read template directory {path}: {err}"
        ) from err
    versions = sorted(
        entry for entry in entries if os.path.isdir(os.path.join(path, entry))
    )
    log.debug3("Found versions for %s: %s", module_name.value, versions)
    return versions


def check_version(module_name: ModuleName, version: str, config_root: str):
    """Make sure a requested version has a template directory

    Raises:
        UnsupportedVersionError: if the version is not shipped. The error lists
            every discovered version.
        TemplateIOError: if the module directory cannot be read
    """
    valid_versions = list_versions(module_name, config_root)
    if version not in valid_versions:
        raise UnsupportedVersionError(
            module_name=module_name.value,
            version=version,
            valid_versions=valid_versions,
        )


def get_module_default_version(
    driver_config_version: str,
    driver_type: Union[DriverType, str],
    module_name: ModuleName,
    config_root: str,
) -> str:
    """Look up the default module version tied to a driver's config version in
    moduleconfig/common/version-values.yaml

    The file has the shape {driver: {driverConfigVersion: {module: version}}}
    and is keyed by canonical driver names.
    """
    path = os.path.join(
        config_root,
        constants.MODULE_CONFIG_DIR,
        constants.COMMON_CONFIG_DIR,
        constants.VERSION_VALUES_FILE,
    )
    try:
        with open(path, encoding="utf-8") as handle:
            version_values = yaml.safe_load(handle) or {}
    except OSError as err:
        raise TemplateIOError(f"failed to read {path}: {err}") from err
    except yaml.YAMLError as err:
        raise TemplateIOError(f"failed to parse {path}: {err}") from err

    driver_name = canonical_driver_type(driver_type).value
    driver_versions = version_values.get(driver_name)
    if not isinstance(driver_versions, dict):
        raise DefaultVersionNotFoundError(
            f"no default module versions for driver {driver_name}"
        )
    module_versions = driver_versions.get(driver_config_version)
    if not isinstance(module_versions, dict):
        raise DefaultVersionNotFoundError(
            f"no default module versions for {driver_name} "
            f"{driver_config_version}"
        )
    version = module_versions.get(module_name.template_dir)
    if not version:
        raise DefaultVersionNotFoundError(
            f"no default {module_name.template_dir} version for {driver_name} "
            f"{driver_config_version}"
        )
    log.debug2(
        "Default %s version for %s %s is %s",
        module_name.value,
        driver_name,
        driver_config_version,
        version,
    )
    return str(version)


def resolve(
    module_name: ModuleName,
    requested_version: Optional[str],
    driver_config_version: str,
    driver_type: Union[DriverType, str],
    config_root: str,
) -> VersionSpec:
    """Determine the effective version for a module

    Args:
        module_name:  ModuleName
            The module being composed
        requested_version:  Optional[str]
            The configVersion from the custom resource, if any
        driver_config_version:  str
            The driver's own config version, used to pick a default
        driver_type:  Union[DriverType, str]
            The driver type or alias
        config_root:  str
            Root of the template store

    Returns:
        version_spec:  VersionSpec
            The resolved version and any image overrides shipped with it
    """
    if requested_version:
        check_version(module_name, requested_version, config_root)
        version = requested_version
    else:
        version = get_module_default_version(
            driver_config_version, driver_type, module_name, config_root
        )
    return VersionSpec(
        module=module_name,
        version=version,
        images=_load_images(module_name, version, config_root),
    )


def min_version_check(min_version: str, version: str) -> bool:
    """Check whether version is at least min_version, comparing major then
    minor only

    Args:
        min_version:  str
            The minimum version in the form vMAJOR.MINOR.PATCH
        version:  str
            The version to check in the same form

    Returns:
        at_least:  bool
            True if version >= min_version by major/minor

    Raises:
        ConfigError: if either version is not of the form vMAJOR.MINOR.PATCH
    """
    min_major, min_minor = _parse_major_minor(min_version)
    major, minor = _parse_major_minor(version)
    if major != min_major:
        return major > min_major
    return minor >= min_minor


## Implementation ##############################################################


def _parse_major_minor(version: str):
    parts = str(version).lstrip("v").split(".")
    if len(parts) != 3:
        raise ConfigError(f"version {version} is not of the form vX.Y.Z")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError as err:
        raise ConfigError(f"version {version} is not of the form vX.Y.Z") from err


def _load_images(module_name: ModuleName, version: str, config_root: str) -> dict:
    """Read the optional images.yaml shipped beside a version's templates"""
    path = os.path.join(
        module_dir(module_name, config_root), version, constants.IMAGES_FILE
    )
    if not os.path.exists(path):
        return {}
    try:
        with open(path, encoding="utf-8") as handle:
            images = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as err:
        raise TemplateIOError(f"failed to read {path}: {err}") from err
    if not isinstance(images, dict):
        raise TemplateIOError(f"{path} does not hold a mapping of images")
    return {str(key): str(val) for key, val in images.items()}

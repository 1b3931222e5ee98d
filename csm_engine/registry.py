"""
Static registry of which driver types each module supports, and the plugin
identifier and config-params volume mount each driver uses. Nothing here is
mutated after import.
"""

# Standard
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

# First Party
import alog

log = alog.use_channel("RGSTY")


class ModuleName(Enum):
    """The closed set of modules the engine can compose"""

    AUTHORIZATION = "authorization"
    AUTHORIZATION_PROXY_SERVER = "authorization-proxy-server"
    REPLICATION = "replication"
    RESILIENCY = "resiliency"
    OBSERVABILITY = "observability"
    REVERSE_PROXY = "csireverseproxy"
    APPLICATION_MOBILITY = "application-mobility"

    @property
    def template_dir(self) -> str:
        """Directory under moduleconfig holding this module's versions. The
        proxy server ships in the same tree as the authorization sidecar.
        """
        if self is ModuleName.AUTHORIZATION_PROXY_SERVER:
            return ModuleName.AUTHORIZATION.value
        return self.value


class DriverType(Enum):
    """Accepted driver type names. Several are aliases for the same array
    family.
    """

    POWERSCALE = "powerscale"
    ISILON = "isilon"
    POWERFLEX = "powerflex"
    VXFLEXOS = "vxflexos"
    POWERMAX = "powermax"
    POWERSTORE = "powerstore"
    UNITY = "unity"


@dataclass(frozen=True)
class SupportedDriverParam:
    plugin_identifier: str
    config_params_volume_mount: str


## Driver parameters ###########################################################

_POWERSCALE = SupportedDriverParam("powerscale", "csi-isilon-config-params")
_POWERFLEX = SupportedDriverParam("powerflex", "vxflexos-config-params")
_POWERMAX = SupportedDriverParam("powermax", "powermax-config-params")
_POWERSTORE = SupportedDriverParam("powerstore", "csi-powerstore-config-params")
_UNITY = SupportedDriverParam("unity", "csi-unity-config-params")

DRIVER_PARAMS: Dict[DriverType, SupportedDriverParam] = {
    DriverType.POWERSCALE: _POWERSCALE,
    DriverType.ISILON: _POWERSCALE,
    DriverType.POWERFLEX: _POWERFLEX,
    DriverType.VXFLEXOS: _POWERFLEX,
    DriverType.POWERMAX: _POWERMAX,
    DriverType.POWERSTORE: _POWERSTORE,
    DriverType.UNITY: _UNITY,
}

# Aliases that fold onto a canonical driver type
_CANONICAL_DRIVER_TYPES = {
    DriverType.ISILON: DriverType.POWERSCALE,
    DriverType.VXFLEXOS: DriverType.POWERFLEX,
}


def _support_map(*driver_types: DriverType) -> Dict[str, SupportedDriverParam]:
    return {dt.value: DRIVER_PARAMS[dt] for dt in driver_types}


## Module support maps #########################################################

SUPPORTED_DRIVERS: Dict[ModuleName, Dict[str, SupportedDriverParam]] = {
    ModuleName.AUTHORIZATION: _support_map(
        DriverType.POWERSCALE,
        DriverType.ISILON,
        DriverType.POWERFLEX,
        DriverType.VXFLEXOS,
        DriverType.POWERMAX,
    ),
    ModuleName.AUTHORIZATION_PROXY_SERVER: _support_map(*DriverType),
    ModuleName.REPLICATION: _support_map(
        DriverType.POWERSCALE,
        DriverType.ISILON,
        DriverType.POWERFLEX,
        DriverType.VXFLEXOS,
        DriverType.POWERMAX,
        DriverType.POWERSTORE,
    ),
    ModuleName.RESILIENCY: _support_map(
        DriverType.POWERSTORE,
        DriverType.POWERSCALE,
        DriverType.ISILON,
        DriverType.POWERFLEX,
        DriverType.VXFLEXOS,
    ),
    ModuleName.OBSERVABILITY: _support_map(
        DriverType.POWERSCALE,
        DriverType.ISILON,
        DriverType.POWERFLEX,
        DriverType.VXFLEXOS,
        DriverType.POWERMAX,
    ),
    ModuleName.REVERSE_PROXY: _support_map(DriverType.POWERMAX),
    ModuleName.APPLICATION_MOBILITY: _support_map(
        DriverType.POWERSCALE,
        DriverType.ISILON,
        DriverType.POWERFLEX,
        DriverType.VXFLEXOS,
        DriverType.POWERMAX,
        DriverType.POWERSTORE,
    ),
}

assert set(SUPPORTED_DRIVERS) == set(
    ModuleName
), "Every module must declare its supported drivers"


## Public ######################################################################


def supports(
    module_name: ModuleName,
    driver_type: Union[DriverType, str],
) -> Optional[SupportedDriverParam]:
    """Look up the driver parameters for a module/driver pair

    Args:
        module_name:  ModuleName
            The module being composed
        driver_type:  Union[DriverType, str]
            The driver type or one of its lower-case aliases

    Returns:
        driver_param:  Optional[SupportedDriverParam]
            The plugin identifier and config-params mount for the driver, or
            None if the module does not support the driver
    """
    key = driver_type.value if isinstance(driver_type, DriverType) else driver_type
    param = SUPPORTED_DRIVERS[module_name].get(str(key).lower())
    log.debug3("Support for %s/%s: %s", module_name.value, key, param)
    return param


def canonical_driver_type(driver_type: Union[DriverType, str]) -> DriverType:
    """Fold a driver alias onto its canonical driver type"""
    if not isinstance(driver_type, DriverType):
        driver_type = DriverType(str(driver_type).lower())
    return _CANONICAL_DRIVER_TYPES.get(driver_type, driver_type)

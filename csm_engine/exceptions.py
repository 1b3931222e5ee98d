"""
This module implements custom exceptions
"""

# Standard
from typing import List, Optional

## Base Error ##################################################################


class CSMError(Exception):
    """Base class for all csm_engine exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error should stop the module
        until the custom resource changes, as opposed to resolving on a later
        pass
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class CSMFatalError(CSMError):
    """A CSMFatalError is one that indicates an unexpected, and likely
    unrecoverable, failure while composing a module.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(CSMFatalError):
    """Exception caused during usage of user-provided configuration"""


class UnsupportedDriverError(CSMFatalError):
    """Exception raised when a module does not support the requested driver
    type
    """

    def __init__(self, module_name: str = "", driver_type: str = ""):
        self.module_name = module_name
        self.driver_type = driver_type
        super().__init__(
            f"CSM Operator does not support {module_name} deployment for "
            f"{driver_type} driver"
        )


class VersionError(CSMFatalError):
    """Base class for failures resolving a module config version"""


class UnsupportedVersionError(VersionError):
    """Exception raised when the requested module version has no template
    directory. The discovered versions are carried for diagnosis.
    """

    def __init__(
        self,
        module_name: str = "",
        version: str = "",
        valid_versions: Optional[List[str]] = None,
    ):
        self.module_name = module_name
        self.version = version
        self.valid_versions = list(valid_versions or [])
        super().__init__(
            f"CSM {module_name} does not have {version} version. The following "
            f"are supported versions: {','.join(self.valid_versions)}"
        )


class DefaultVersionNotFoundError(VersionError):
    """Exception raised when no default module version can be derived from the
    driver's config version
    """


class RenderError(CSMFatalError):
    """Exception caused when a template cannot be read or the rendered text
    cannot be deserialized
    """


class TemplateIOError(RenderError):
    """Exception caused when the template store cannot be read. This is kept
    distinct from a missing version so that a broken config directory is not
    reported as an unsupported version.
    """


class InjectError(CSMFatalError):
    """Exception caused by a malformed workload or sidecar during injection"""


class ClusterError(CSMFatalError):
    """Exception caused when a cluster operation fails in an unexpected way"""


class ApplyError(ClusterError):
    """Exception raised when an object could not be created or updated"""


class DeleteError(ClusterError):
    """Exception raised when an object could not be deleted"""


## Expected Errors #############################################################


class CSMExpectedError(CSMError):
    """A CSMExpectedError is one that indicates an expected failure condition
    that should stop the module for this pass, but is expected to resolve in a
    subsequent pass.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class PreconditionError(CSMExpectedError):
    """Exception caused during precheck when an expected precondition is not
    met.
    """


class MissingPrerequisiteError(PreconditionError):
    """Exception raised when a required secret or config map is not present in
    the target namespace
    """

    def __init__(self, resource_name: str = "", resource_kind: str = "Secret"):
        self.resource_name = resource_name
        self.resource_kind = resource_kind
        super().__init__(
            f"failed to find {resource_kind.lower()} {resource_name}"
        )


## Assertions ##################################################################


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError. This should be
    used when the custom resource or the library config must satisfy certain
    conditions.
    """
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation in the cluster (such as fetching an existing
    secret) must succeed.
    """
    if not condition:
        raise ClusterError(message)


def assert_render(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a RenderError. This should be
    used when validating the shape of rendered template content.
    """
    if not condition:
        raise RenderError(message)


def assert_inject(condition: bool, message: str = ""):
    """Replacement for assert() which will throw an InjectError. This should be
    used when validating the shape of a workload before mutating it.
    """
    if not condition:
        raise InjectError(message)

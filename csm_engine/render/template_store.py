"""
Template stores hand the renderer raw template text. The file store reads the
operator-supplied tree moduleconfig/<module>/<version>/<artifact>.
"""

# Standard
import abc
import os

# First Party
import alog

# Local
from .. import constants
from ..exceptions import TemplateIOError
from ..versions import VersionSpec, module_dir

log = alog.use_channel("TMPLS")


class TemplateStore(abc.ABC):
    """Source of raw template text"""

    @abc.abstractmethod
    def read(self, version_spec: VersionSpec, artifact: str) -> str:
        """Read a versioned artifact for a module

        Args:
            version_spec:  VersionSpec
                The resolved module/version pair
            artifact:  str
                File name of the artifact within the version directory

        Returns:
            text:  str
                The raw template text

        Raises:
            TemplateIOError: if the artifact cannot be read
        """

    @abc.abstractmethod
    def read_shared(self, *path_parts: str) -> str:
        """Read an artifact that lives under moduleconfig/ outside of any
        version directory (e.g. cert-manager manifests)
        """


class FileTemplateStore(TemplateStore):
    """TemplateStore backed by a directory tree on disk"""

    def __init__(self, config_root: str):
        self.config_root = config_root

    def read(self, version_spec: VersionSpec, artifact: str) -> str:
        return self._read_file(self._versioned_path(version_spec, artifact))

    def read_shared(self, *path_parts: str) -> str:
        return self._read_file(
            os.path.join(self.config_root, constants.MODULE_CONFIG_DIR, *path_parts)
        )

    ## Implementation ##########################################################

    def _versioned_path(self, version_spec: VersionSpec, artifact: str) -> str:
        return os.path.join(
            module_dir(version_spec.module, self.config_root),
            version_spec.version,
            artifact,
        )

    @staticmethod
    def _read_file(path: str) -> str:
        log.debug2("Reading template %s", path)
        try:
            with open(path, encoding="utf-8") as handle:
                return handle.read()
        except OSError as err:
            raise TemplateIOError(f"failed to read template {path}: {err}") from err

"""
Base class for all csm_engine commands
"""

# Standard
from typing import List, Optional
import abc
import argparse
import sys

# Third Party
import yaml

# First Party
import alog

# Local
from ..custom_resource import CustomResource
from ..deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from ..engine import EngineResult, ModuleEngine
from ..exceptions import ConfigError

log = alog.use_channel("CMD")


class CmdBase(abc.ABC):
    __doc__ = __doc__

    @abc.abstractmethod
    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add this command's argument parser subcommand

        Args:
            subparsers (argparse._SubParsersAction): The subparser section for
                the central main parser

        Returns:
            subparser (argparse.ArgumentParser): The configured parser for this
                command
        """

    @abc.abstractmethod
    def cmd(self, args: argparse.Namespace):
        """Execute the command with the parsed arguments

        Args:
            args (argparse.Namespace): The parsed command line arguments
        """

    ## Shared helpers ##########################################################

    @staticmethod
    def add_cr_args(parser: argparse.ArgumentParser) -> argparse._ArgumentGroup:
        """Add the arguments every engine command takes"""
        command_args = parser.add_argument_group("Command Arguments")
        command_args.add_argument(
            "--cr",
            "-c",
            required=True,
            help="Path to a ContainerStorageModule manifest",
        )
        return command_args

    @staticmethod
    def add_dry_run_arg(command_args: argparse._ArgumentGroup):
        command_args.add_argument(
            "--dry-run",
            "-n",
            action="store_true",
            default=False,
            help="Run against an in-memory cluster instead of the real one",
        )
        CmdBase.add_resources_arg(command_args)

    @staticmethod
    def add_resources_arg(command_args: argparse._ArgumentGroup):
        command_args.add_argument(
            "--resources",
            "-r",
            action="append",
            default=None,
            help=(
                "Path to a yaml file of objects that already exist in the "
                "in-memory cluster. May be given more than once."
            ),
        )

    @staticmethod
    def load_yaml(path: Optional[str]) -> Optional[dict]:
        """Load a single yaml document from a file"""
        if path is None:
            return None
        try:
            with open(path, encoding="utf-8") as handle:
                content = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as err:
            raise ConfigError(f"failed to load {path}: {err}") from err
        if not isinstance(content, dict):
            raise ConfigError(f"{path} does not hold a single yaml mapping")
        return content

    @staticmethod
    def load_resources(paths: Optional[List[str]]) -> List[dict]:
        """Load every yaml document from each file. Empty documents are
        skipped.
        """
        resources = []
        for path in paths or []:
            try:
                with open(path, encoding="utf-8") as handle:
                    documents = list(yaml.safe_load_all(handle))
            except (OSError, yaml.YAMLError) as err:
                raise ConfigError(f"failed to load {path}: {err}") from err
            for document in documents:
                if document is None:
                    continue
                if not isinstance(document, dict):
                    raise ConfigError(f"{path} holds a non-mapping yaml document")
                resources.append(document)
        log.debug2("Loaded %d pre-existing resources", len(resources))
        return resources

    def load_cr(self, args: argparse.Namespace) -> CustomResource:
        manifest = self.load_yaml(args.cr)
        ModuleEngine.configure_logging(manifest)
        return CustomResource.from_manifest(manifest)

    @staticmethod
    def make_engine(
        cr: CustomResource,
        dry_run: bool = True,
        resources: Optional[List[dict]] = None,
    ) -> ModuleEngine:
        """Build an engine against the dry run or real cluster. The resources
        seed the dry run cluster and are ignored for the real one.
        """
        deploy_manager: DeployManagerBase
        if dry_run:
            deploy_manager = DryRunDeployManager(
                resources=resources, owner_cr=cr.manifest
            )
        else:
            if resources:
                log.warning("Ignoring --resources outside of a dry run")
            deploy_manager = OpenshiftDeployManager(owner_cr=cr.manifest)
        return ModuleEngine(deploy_manager)

    @staticmethod
    def log_result(result: EngineResult, verb: str) -> bool:
        """Log the per-module outcome and return whether any module failed"""
        for module_result in result.modules:
            if module_result.succeeded:
                log.info(
                    "%s %s: %d objects (changed: %s)",
                    verb,
                    module_result.module.value,
                    len(module_result.objects),
                    module_result.changed,
                )
            else:
                log.error(
                    "%s %s failed: %s",
                    verb,
                    module_result.module.value,
                    module_result.error,
                )
        return bool(result.failed)

    @classmethod
    def report(cls, result: EngineResult, verb: str):
        """Log the per-module outcome and exit non-zero if any module failed"""
        if cls.log_result(result, verb):
            sys.exit(1)

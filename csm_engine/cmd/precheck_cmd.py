"""
CLI command for running the module prechecks of a custom resource
"""
# Standard
import argparse

# First Party
import alog

# Local
from .base import CmdBase

log = alog.use_channel("CMD-PRCK")


class PrecheckCmd(CmdBase):
    __doc__ = __doc__

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add the subparser for this command"""
        parser = subparsers.add_parser(
            "precheck",
            help="Check driver support, versions and required secrets",
        )
        command_args = self.add_cr_args(parser)
        self.add_dry_run_arg(command_args)
        return parser

    def cmd(self, args: argparse.Namespace):
        cr = self.load_cr(args)
        log.info("Running prechecks for %s/%s", cr.namespace, cr.name)
        result = self.make_engine(
            cr, dry_run=args.dry_run, resources=self.load_resources(args.resources)
        ).precheck(cr)
        self.report(result, "precheck")

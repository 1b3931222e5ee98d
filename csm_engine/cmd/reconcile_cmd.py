"""
CLI commands for applying and deleting the module objects of a custom resource
"""
# Standard
import argparse

# First Party
import alog

# Local
from .base import CmdBase

log = alog.use_channel("CMD-RCNL")


class ApplyCmd(CmdBase):
    """Precheck, render and apply every enabled module"""

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add the subparser for this command"""
        parser = subparsers.add_parser(
            "apply",
            help="Create or update the objects of every enabled module",
        )
        command_args = self.add_cr_args(parser)
        self.add_dry_run_arg(command_args)
        return parser

    def cmd(self, args: argparse.Namespace):
        cr = self.load_cr(args)
        log.info("Applying modules for %s/%s", cr.namespace, cr.name)
        result = self.make_engine(
            cr, dry_run=args.dry_run, resources=self.load_resources(args.resources)
        ).apply(cr)
        self.report(result, "apply")


class DeleteCmd(CmdBase):
    """Render and delete every enabled module"""

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add the subparser for this command"""
        parser = subparsers.add_parser(
            "delete",
            help="Delete the objects of every enabled module",
        )
        command_args = self.add_cr_args(parser)
        self.add_dry_run_arg(command_args)
        return parser

    def cmd(self, args: argparse.Namespace):
        cr = self.load_cr(args)
        log.info("Deleting modules for %s/%s", cr.namespace, cr.name)
        result = self.make_engine(
            cr, dry_run=args.dry_run, resources=self.load_resources(args.resources)
        ).delete(cr)
        self.report(result, "delete")

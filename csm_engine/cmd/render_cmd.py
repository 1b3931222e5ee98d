"""
CLI command for rendering a custom resource's module objects and injected
driver workloads without touching the cluster
"""
# Standard
import argparse
import sys

# Third Party
import yaml

# First Party
import alog

# Local
from ..modules import DriverWorkloads
from .base import CmdBase

log = alog.use_channel("CMD-RNDR")


class RenderCmd(CmdBase):
    __doc__ = __doc__

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add the subparser for this command"""
        parser = subparsers.add_parser(
            "render",
            help="Print the rendered module objects and injected driver workloads",
        )
        command_args = self.add_cr_args(parser)
        command_args.add_argument(
            "--controller",
            default=None,
            help="Path to the driver controller workload to inject into",
        )
        command_args.add_argument(
            "--node",
            default=None,
            help="Path to the driver node workload to inject into",
        )
        command_args.add_argument(
            "--cluster-role",
            default=None,
            help="Path to the driver controller ClusterRole to inject into",
        )
        command_args.add_argument(
            "--deleting",
            action="store_true",
            default=False,
            help="Render the objects that a delete would remove",
        )
        self.add_resources_arg(command_args)
        return parser

    def cmd(self, args: argparse.Namespace):
        cr = self.load_cr(args)
        engine = self.make_engine(
            cr, dry_run=True, resources=self.load_resources(args.resources)
        )
        result = engine.render(cr, is_deleting=args.deleting)
        documents = [
            obj.definition
            for module_result in result.modules
            for obj in module_result.objects
        ]

        workloads = DriverWorkloads(
            controller=self.load_yaml(args.controller),
            node=self.load_yaml(args.node),
            cluster_role=self.load_yaml(args.cluster_role),
        )
        inject_result = None
        if any([workloads.controller, workloads.node, workloads.cluster_role]):
            log.debug("Injecting modules into the given driver workloads")
            inject_result = engine.inject(cr, workloads)
            injected = inject_result.workloads
            documents.extend(
                workload
                for workload in [
                    injected.controller,
                    injected.node,
                    injected.cluster_role,
                ]
                if workload is not None
            )

        yaml.safe_dump_all(documents, sys.stdout, default_flow_style=False)
        failed = self.log_result(result, "render")
        if inject_result is not None:
            failed = self.log_result(inject_result, "inject") or failed
        if failed:
            sys.exit(1)

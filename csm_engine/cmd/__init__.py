"""
This module holds all of the command classes for csm_engine's main entrypoint
"""

# Local
from .base import CmdBase
from .precheck_cmd import PrecheckCmd
from .reconcile_cmd import ApplyCmd, DeleteCmd
from .render_cmd import RenderCmd

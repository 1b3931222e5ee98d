"""
Custom logging formats that contain more detailed csm_engine logs
"""

# First Party
from alog import AlogJsonFormatter
import alog

log = alog.use_channel("LGFMT")


class CSMJsonFormatter(AlogJsonFormatter):
    """Custom Log Format that extends AlogJsonFormatter to add the identity of
    the custom resource being composed, the pass id and the module a record
    belongs to
    """

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "process",
        "thread",
        "threadName",
        "crName",
        "crNamespace",
        "csmModule",
        "reconciliationId",
    ]

    def __init__(self, manifest=None, reconciliation_id=None):
        super().__init__()
        self.manifest = manifest
        self.reconciliation_id = reconciliation_id

    def format(self, record):
        if self.reconciliation_id:
            record.reconciliationId = self.reconciliation_id

        if resource := getattr(record, "resource", self.manifest):
            metadata = resource.get("metadata") or {}
            record.crName = metadata.get("name")
            record.crNamespace = metadata.get("namespace")

        return super().format(record)

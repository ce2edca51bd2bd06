"""Best-effort schema reconciliation against the live database"""

from .channel import EngineSqlChannel, RpcSqlChannel, SqlChannel
from .prober import SchemaProber
from .reconcile import ColumnSpec, ReconcileResult, SchemaReconciler, reconcile_columns

__all__ = [
    "ColumnSpec",
    "EngineSqlChannel",
    "ReconcileResult",
    "RpcSqlChannel",
    "SchemaProber",
    "SchemaReconciler",
    "SqlChannel",
    "reconcile_columns",
]

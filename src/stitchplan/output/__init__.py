"""Output generation for plans and PAB results (JSON, text)."""

from stitchplan.output.pab_report import PabReportGenerator
from stitchplan.output.plan_file import Plan, PlanFile

__all__ = [
    "PabReportGenerator",
    "Plan",
    "PlanFile",
]

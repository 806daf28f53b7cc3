"""Pre-publish quality gate."""

from tacklepub.quality.gate import run_quality_gate
from tacklepub.quality.models import QualityGateResult

__all__ = ["QualityGateResult", "run_quality_gate"]

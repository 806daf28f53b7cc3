"""Quality gate verdict."""

from __future__ import annotations

from pydantic import BaseModel, Field


class QualityGateResult(BaseModel):
    """Outcome of a gate run. Any error blocks; warnings are advisory."""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return bool(self.errors)

    @property
    def passed(self) -> bool:
        return not self.errors

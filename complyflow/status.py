"""Status snapshot returned by orchestrator reads and writes."""

from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .contracts import Alert, EligibilityState, PhaseProgress
from .discovery.entities import Requirement
from .persistence.models import WorkflowInstance


class StatusSnapshot(BaseModel):
    """Freshly computed view of one instance; never stored."""

    instance: WorkflowInstance
    as_of: date
    current_phase: Optional[str] = None
    overall_percent: int = 0
    phases: List[PhaseProgress] = Field(default_factory=list)
    eligibility: Dict[str, EligibilityState] = Field(default_factory=dict)
    alerts: List[Alert] = Field(default_factory=list)
    next_action: str = ""
    requirements: List[Requirement] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def instance_id(self) -> str:
        return self.instance.instance_id

    @property
    def version(self) -> int:
        return self.instance.version

    def phase(self, phase_key: str) -> Optional[PhaseProgress]:
        return next((p for p in self.phases if p.phase_key == phase_key), None)

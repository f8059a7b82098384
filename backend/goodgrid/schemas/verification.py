from __future__ import annotations
import enum
from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class _GatewayModel(BaseModel):
    # the verification service speaks camelCase JSON
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class VerificationResult(_GatewayModel):
    passed: bool = False
    score: float = Field(default=0, ge=0, le=100)
    requires_manual_review: bool = Field(default=False, alias="requiresManualReview")
    flagged_issues: list[str] = Field(default_factory=list, alias="flaggedIssues")
    reasoning: str | None = None


class FraudAssessment(_GatewayModel):
    is_fraudulent: bool = Field(default=False, alias="isFraudulent")
    risk_level: RiskLevel = Field(default=RiskLevel.LOW, alias="riskLevel")
    reasons: list[str] = Field(default_factory=list)


class FeedbackReport(_GatewayModel):
    feedback: str
    strengths: list[str] = Field(default_factory=list)
    areas_for_improvement: list[str] = Field(default_factory=list, alias="areasForImprovement")
    suggestions: list[str] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    """One prior submission handed to the fraud heuristic."""
    submission_id: str
    task_id: str
    task_title: str
    category: str
    status: str
    submitted_at: str
    submission_text: str | None = None

from __future__ import annotations
import enum
from dataclasses import dataclass
from goodgrid.schemas.verification import FraudAssessment, RiskLevel, VerificationResult

# Fixed business rules
QUALITY_THRESHOLD = 70      # below this a human looks at it, fraud signal or not
AUTO_APPROVE_SCORE = 80     # auto-approval also requires passed=True
RISK_PRIORITY = {RiskLevel.HIGH: 4, RiskLevel.MEDIUM: 2, RiskLevel.LOW: 1}
GATEWAY_FAILURE_PRIORITY = RISK_PRIORITY[RiskLevel.HIGH]
HISTORY_WINDOW = 10


class Action(str, enum.Enum):
    MANUAL_REVIEW = "MANUAL_REVIEW"
    AUTO_APPROVE = "AUTO_APPROVE"
    REQUEST_REVISION = "REQUEST_REVISION"


@dataclass(frozen=True)
class Decision:
    action: Action
    reason: str
    priority: int | None = None


def priority_for(risk: RiskLevel) -> int:
    return RISK_PRIORITY.get(risk, 1)


def decide(result: VerificationResult, fraud: FraudAssessment) -> Decision:
    """
    Route a verified submission. Checks run in priority order; the first match wins.
    Gateway failures never reach here; callers escalate them at GATEWAY_FAILURE_PRIORITY.
    """
    priority = priority_for(fraud.risk_level)
    if result.requires_manual_review:
        return Decision(Action.MANUAL_REVIEW, "verifier_requested_review", priority)
    if fraud.is_fraudulent:
        return Decision(Action.MANUAL_REVIEW, "fraud_detected", priority)
    if fraud.risk_level == RiskLevel.HIGH:
        return Decision(Action.MANUAL_REVIEW, "high_fraud_risk", priority)
    if result.score < QUALITY_THRESHOLD:
        return Decision(Action.MANUAL_REVIEW, "low_quality_score", priority)
    if result.passed and result.score >= AUTO_APPROVE_SCORE:
        return Decision(Action.AUTO_APPROVE, "high_confidence_pass")
    return Decision(Action.REQUEST_REVISION, "needs_improvement")


def manual_approval_score(ai_score: float | None, rating: int | None) -> float:
    """
    Quality score used when a reviewer approves. The reviewer can raise the
    automated score but never lower it; no rating means "meets the auto-approve bar".
    """
    base = float(ai_score or 0)
    if rating:
        return max(base, float(rating * 20))
    return max(base, float(AUTO_APPROVE_SCORE))

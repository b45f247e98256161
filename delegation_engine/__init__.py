from .models import (
    Address,
    Delegation,
    Distribution,
    DistributionSpec,
    OperationType,
    PlannedOperation,
    Quantity,
    StakeHolding,
    StakeSnapshot,
)
from .planner import (
    InputValidationError,
    InsufficientStakeError,
    PlanValidationError,
    RebalancePlanner,
    apply_plan,
    fee_totals,
    validate_plan,
)

__all__ = [
    "Address",
    "Delegation",
    "Distribution",
    "DistributionSpec",
    "InputValidationError",
    "InsufficientStakeError",
    "OperationType",
    "PlanValidationError",
    "PlannedOperation",
    "Quantity",
    "RebalancePlanner",
    "StakeHolding",
    "StakeSnapshot",
    "apply_plan",
    "fee_totals",
    "validate_plan",
]

from .collector import ResultCollector
from .eligibility import (
    EligibilityChecker,
    EligibilityError,
    InsufficientFeeError,
    InvalidDelegateeError,
    check_eligibility,
)
from .executor import BatchExecutor
from .models import (
    ExecutionOutcome,
    ExecutionReport,
    ExecutionResult,
    ResultRegistry,
    Settlement,
)

__all__ = [
    "BatchExecutor",
    "EligibilityChecker",
    "EligibilityError",
    "ExecutionOutcome",
    "ExecutionReport",
    "ExecutionResult",
    "InsufficientFeeError",
    "InvalidDelegateeError",
    "ResultCollector",
    "ResultRegistry",
    "Settlement",
    "check_eligibility",
]

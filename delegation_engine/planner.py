"""Deterministic delegation rebalancing planner with plan validation."""

from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from .models import (
    Address,
    Delegation,
    DistributionSpec,
    OperationType,
    PlannedOperation,
    Quantity,
    StakeHolding,
    StakeSnapshot,
)

log = structlog.get_logger(__name__)


class InputValidationError(ValueError):
    """Raised when a distribution is malformed."""


class InsufficientStakeError(ValueError):
    """Raised when the requested distribution exceeds the available stake."""

    def __init__(self, available: Quantity, requested: Quantity) -> None:
        super().__init__(
            f"Stakeholders' available stake ({available:,}) is less than "
            f"the sum of distributions ({requested:,})."
        )
        self.available = available
        self.requested = requested


class PlanValidationError(ValueError):
    """Raised when a plan violates hard validation rules."""


class _Tracer:
    """Mutable working copy of stake balances for a single planning run.

    Two keyed tables hold the state: stakeholder -> undelegated quantity and
    (stakeholder, validator) -> delegated quantity. Zero entries are removed
    after every mutation, so presence means a positive remainder.
    """

    def __init__(self) -> None:
        self.accounts: List[Address] = []
        self.undelegated: Dict[Address, Quantity] = {}
        self.delegations: Dict[Tuple[Address, Address], Quantity] = {}

    @classmethod
    def for_distribution(cls, snapshot: StakeSnapshot, spec: DistributionSpec) -> "_Tracer":
        tracer = cls()
        for stakeholder in spec.stakeholders:
            tracer.accounts.append(stakeholder)
            tracer.set_undelegated(stakeholder, snapshot.undelegated(stakeholder))
            for validator in spec.validators:
                tracer.set_delegation(
                    stakeholder, validator, snapshot.delegated(stakeholder, validator)
                )
        return tracer

    @classmethod
    def for_snapshot(cls, snapshot: StakeSnapshot) -> "_Tracer":
        tracer = cls()
        for holding in snapshot.holdings:
            tracer.accounts.append(holding.account)
            tracer.set_undelegated(holding.account, holding.undelegated)
            for delegation in holding.delegations:
                tracer.set_delegation(
                    holding.account,
                    delegation.delegatee,
                    tracer.delegation(holding.account, delegation.delegatee)
                    + delegation.quantity,
                )
        return tracer

    def undelegated_of(self, stakeholder: Address) -> Quantity:
        return self.undelegated.get(stakeholder, 0)

    def delegation(self, stakeholder: Address, validator: Address) -> Quantity:
        return self.delegations.get((stakeholder, validator), 0)

    def set_undelegated(self, stakeholder: Address, quantity: Quantity) -> None:
        if quantity < 0:
            raise PlanValidationError(f"Undelegated stake of {stakeholder} would become negative.")
        if quantity == 0:
            self.undelegated.pop(stakeholder, None)
        else:
            self.undelegated[stakeholder] = quantity

    def set_delegation(self, stakeholder: Address, validator: Address, quantity: Quantity) -> None:
        if quantity < 0:
            raise PlanValidationError(
                f"Delegation of {stakeholder} to {validator} would become negative."
            )
        if quantity == 0:
            self.delegations.pop((stakeholder, validator), None)
        else:
            self.delegations[(stakeholder, validator)] = quantity

    def delegated_total(self, stakeholders: Iterable[Address], validator: Address) -> Quantity:
        return sum(self.delegation(stakeholder, validator) for stakeholder in stakeholders)

    def over_delegated(self, spec: DistributionSpec) -> List[Tuple[Address, Quantity]]:
        result = []
        for distribution in spec.distributions:
            delegated = self.delegated_total(spec.stakeholders, distribution.validator)
            if delegated > distribution.quantity:
                result.append((distribution.validator, delegated - distribution.quantity))
        return result

    def under_delegated(self, spec: DistributionSpec) -> List[Tuple[Address, Quantity]]:
        result = []
        for distribution in spec.distributions:
            delegated = self.delegated_total(spec.stakeholders, distribution.validator)
            if distribution.quantity > delegated:
                result.append((distribution.validator, distribution.quantity - delegated))
        return result

    def apply(self, operation: PlannedOperation) -> None:
        delegator = operation.delegator
        quantity = operation.quantity
        if operation.operation_type == OperationType.DELEGATE:
            self.set_undelegated(delegator, self.undelegated_of(delegator) - quantity)
            self.set_delegation(
                delegator,
                operation.delegatee,
                self.delegation(delegator, operation.delegatee) + quantity,
            )
        elif operation.operation_type == OperationType.REVOKE:
            self.set_delegation(
                delegator,
                operation.delegatee,
                self.delegation(delegator, operation.delegatee) - quantity,
            )
            self.set_undelegated(delegator, self.undelegated_of(delegator) + quantity)
        elif operation.operation_type == OperationType.REDELEGATE:
            self.set_delegation(
                delegator,
                operation.delegatee,
                self.delegation(delegator, operation.delegatee) - quantity,
            )
            self.set_delegation(
                delegator,
                operation.next_delegatee,
                self.delegation(delegator, operation.next_delegatee) + quantity,
            )
        else:
            raise PlanValidationError("Operation type must be a defined enum.")
        if delegator not in self.accounts:
            self.accounts.append(delegator)

    def to_snapshot(self, height: int) -> StakeSnapshot:
        holdings = []
        for account in self.accounts:
            delegations = tuple(
                Delegation(delegatee=validator, quantity=quantity)
                for (delegator, validator), quantity in self.delegations.items()
                if delegator == account
            )
            holdings.append(
                StakeHolding(
                    account=account,
                    undelegated=self.undelegated_of(account),
                    delegations=delegations,
                )
            )
        return StakeSnapshot(height=height, holdings=tuple(holdings))


class RebalancePlanner:
    """Builds the operation sequence that moves a snapshot onto a distribution.

    Three greedy passes run over a private tracer: redelegate between
    over- and under-delegated validators, revoke what is still in excess,
    then delegate undelegated stake into what is still missing. Ties are
    broken by document order, stakeholders first, then validators.
    """

    def plan(
        self, snapshot: StakeSnapshot, spec: DistributionSpec
    ) -> Tuple[PlannedOperation, ...]:
        validate_distribution_spec(spec)

        tracer = _Tracer.for_distribution(snapshot, spec)
        available = _available_stake(tracer, spec)
        if available < spec.total_quantity:
            raise InsufficientStakeError(available, spec.total_quantity)

        operations: List[PlannedOperation] = []
        self._plan_redelegations(tracer, spec, operations)
        self._plan_revokes(tracer, spec, operations)
        self._plan_delegations(tracer, spec, operations)

        if tracer.under_delegated(spec):
            raise InsufficientStakeError(available, spec.total_quantity)

        planned = tuple(operations)
        validate_plan(snapshot, spec, planned)
        log.debug(
            "plan_built",
            height=snapshot.height,
            operations=len(planned),
            requested=spec.total_quantity,
            available=available,
        )
        return planned

    def _plan_redelegations(
        self,
        tracer: _Tracer,
        spec: DistributionSpec,
        operations: List[PlannedOperation],
    ) -> None:
        for prev, excess in tracer.over_delegated(spec):
            # Deficits are re-read per source validator; earlier sources may have filled some.
            for nxt, deficit in tracer.under_delegated(spec):
                if excess == 0:
                    break
                amount = min(excess, deficit)
                for stakeholder in spec.stakeholders:
                    if amount == 0:
                        break
                    quantity = min(tracer.delegation(stakeholder, prev), amount)
                    _emit(
                        tracer,
                        operations,
                        PlannedOperation(
                            operation_type=OperationType.REDELEGATE,
                            delegator=stakeholder,
                            delegatee=prev,
                            next_delegatee=nxt,
                            quantity=quantity,
                            fee=spec.fee,
                        ),
                    )
                    amount -= quantity
                    excess -= quantity

    def _plan_revokes(
        self,
        tracer: _Tracer,
        spec: DistributionSpec,
        operations: List[PlannedOperation],
    ) -> None:
        for validator, excess in tracer.over_delegated(spec):
            for stakeholder in spec.stakeholders:
                if excess == 0:
                    break
                quantity = min(tracer.delegation(stakeholder, validator), excess)
                _emit(
                    tracer,
                    operations,
                    PlannedOperation(
                        operation_type=OperationType.REVOKE,
                        delegator=stakeholder,
                        delegatee=validator,
                        quantity=quantity,
                        fee=spec.fee,
                    ),
                )
                excess -= quantity

    def _plan_delegations(
        self,
        tracer: _Tracer,
        spec: DistributionSpec,
        operations: List[PlannedOperation],
    ) -> None:
        for validator, deficit in tracer.under_delegated(spec):
            for stakeholder in spec.stakeholders:
                if deficit == 0:
                    break
                quantity = min(tracer.undelegated_of(stakeholder), deficit)
                _emit(
                    tracer,
                    operations,
                    PlannedOperation(
                        operation_type=OperationType.DELEGATE,
                        delegator=stakeholder,
                        delegatee=validator,
                        quantity=quantity,
                        fee=spec.fee,
                    ),
                )
                deficit -= quantity


def validate_distribution_spec(spec: DistributionSpec) -> None:
    _check_unique(spec.stakeholders)
    _check_unique(spec.validators)
    if not _is_integer(spec.fee) or spec.fee < 0:
        raise InputValidationError("Fee must be a non-negative integer.")
    for distribution in spec.distributions:
        if not _is_integer(distribution.quantity):
            raise InputValidationError(
                f"Quantity for {distribution.validator} must be an integer."
            )
        if distribution.quantity < 0:
            raise InputValidationError(
                f"Quantity for {distribution.validator} must be non-negative."
            )


def validate_plan(
    snapshot: StakeSnapshot,
    spec: DistributionSpec,
    operations: Iterable[PlannedOperation],
) -> None:
    """Replay ``operations`` over ``snapshot`` and check every hard rule."""
    tracer = _Tracer.for_distribution(snapshot, spec)
    validators = set(spec.validators)
    for operation in operations:
        _validate_operation(operation, spec, validators)
        tracer.apply(operation)

    for distribution in spec.distributions:
        delegated = tracer.delegated_total(spec.stakeholders, distribution.validator)
        if delegated != distribution.quantity:
            raise PlanValidationError(
                f"Plan leaves {distribution.validator} at {delegated:,}, "
                f"expected {distribution.quantity:,}."
            )


def apply_plan(
    snapshot: StakeSnapshot, operations: Iterable[PlannedOperation]
) -> StakeSnapshot:
    """Return the snapshot that results from settling every operation."""
    tracer = _Tracer.for_snapshot(snapshot)
    for operation in operations:
        tracer.apply(operation)
    return tracer.to_snapshot(snapshot.height)


def fee_totals(operations: Iterable[PlannedOperation]) -> Dict[Address, int]:
    totals: Dict[Address, int] = {}
    for operation in operations:
        totals[operation.delegator] = totals.get(operation.delegator, 0) + operation.fee
    return totals


def _available_stake(tracer: _Tracer, spec: DistributionSpec) -> Quantity:
    # Only delegations to validators named in the distribution count as available.
    return sum(
        tracer.undelegated_of(stakeholder)
        + sum(tracer.delegation(stakeholder, validator) for validator in spec.validators)
        for stakeholder in spec.stakeholders
    )


def _emit(
    tracer: _Tracer,
    operations: List[PlannedOperation],
    operation: PlannedOperation,
) -> None:
    if operation.quantity == 0:
        return
    tracer.apply(operation)
    operations.append(operation)


def _validate_operation(
    operation: PlannedOperation,
    spec: DistributionSpec,
    validators: set,
) -> None:
    if not isinstance(operation.operation_type, OperationType):
        raise PlanValidationError("Operation type must be a defined enum.")
    if operation.quantity <= 0:
        raise PlanValidationError("Operation quantity must be positive.")
    if operation.fee != spec.fee:
        raise PlanValidationError("Operation fee must match the distribution fee.")
    if operation.delegator not in spec.stakeholders:
        raise PlanValidationError(f"{operation.delegator} is not a listed stakeholder.")

    touched: Tuple[Optional[Address], ...] = (operation.delegatee,)
    if operation.operation_type == OperationType.REDELEGATE:
        if operation.next_delegatee is None:
            raise PlanValidationError("Redelegation requires a next delegatee.")
        if operation.next_delegatee == operation.delegatee:
            raise PlanValidationError("Redelegation must change the delegatee.")
        touched = (operation.delegatee, operation.next_delegatee)
    elif operation.next_delegatee is not None:
        raise PlanValidationError("Only redelegations carry a next delegatee.")

    for validator in touched:
        if validator not in validators:
            raise PlanValidationError(f"{validator} is not part of the distribution.")


def _check_unique(values: Iterable[Address]) -> None:
    seen = set()
    for value in values:
        if value in seen:
            raise InputValidationError(f"Duplicated entries: {value}")
        seen.add(value)


def _is_integer(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)

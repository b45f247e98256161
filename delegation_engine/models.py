"""Domain models for the delegation rebalancing engine."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

Address = str
Quantity = int


class OperationType(Enum):
    DELEGATE = "delegate"
    REVOKE = "revoke"
    REDELEGATE = "redelegate"


@dataclass(frozen=True)
class Delegation:
    delegatee: Address
    quantity: Quantity


@dataclass(frozen=True)
class StakeHolding:
    """Undelegated stake of one account plus its delegations."""

    account: Address
    undelegated: Quantity = 0
    delegations: Tuple[Delegation, ...] = ()

    def delegated_to(self, validator: Address) -> Quantity:
        return sum(
            delegation.quantity
            for delegation in self.delegations
            if delegation.delegatee == validator
        )

    @property
    def total(self) -> Quantity:
        return self.undelegated + sum(delegation.quantity for delegation in self.delegations)


@dataclass(frozen=True)
class StakeSnapshot:
    """Holdings of every relevant account as of one ledger height."""

    height: int
    holdings: Tuple[StakeHolding, ...]

    def holding(self, account: Address) -> StakeHolding:
        for holding in self.holdings:
            if holding.account == account:
                return holding
        return StakeHolding(account=account)

    def undelegated(self, account: Address) -> Quantity:
        return self.holding(account).undelegated

    def delegated(self, account: Address, validator: Address) -> Quantity:
        return self.holding(account).delegated_to(validator)


@dataclass(frozen=True)
class Distribution:
    validator: Address
    quantity: Quantity


@dataclass(frozen=True)
class DistributionSpec:
    """Target delegated quantity per validator, funded by ``stakeholders``.

    Entry order is significant: the planner serves stakeholders and
    validators first come, first served in the order given here.
    """

    stakeholders: Tuple[Address, ...]
    fee: int
    distributions: Tuple[Distribution, ...]

    @property
    def validators(self) -> Tuple[Address, ...]:
        return tuple(distribution.validator for distribution in self.distributions)

    @property
    def total_quantity(self) -> Quantity:
        return sum(distribution.quantity for distribution in self.distributions)


@dataclass(frozen=True)
class PlannedOperation:
    """One ledger operation signed by ``delegator``.

    For redelegations ``delegatee`` is the validator the stake leaves and
    ``next_delegatee`` the one it moves to.
    """

    operation_type: OperationType
    delegator: Address
    delegatee: Address
    quantity: Quantity
    fee: int
    next_delegatee: Optional[Address] = None

    @property
    def target(self) -> Address:
        if self.operation_type == OperationType.REDELEGATE:
            return self.next_delegatee
        return self.delegatee

    def to_dict(self) -> dict:
        result = {
            "type": self.operation_type.value,
            "delegator": self.delegator,
            "delegatee": self.delegatee,
            "quantity": self.quantity,
            "fee": self.fee,
        }
        if self.next_delegatee is not None:
            result["next_delegatee"] = self.next_delegatee
        return result

"""JSON input documents: distribution files and stake snapshots."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import List, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .models import Delegation, Distribution, DistributionSpec, StakeHolding, StakeSnapshot
from .planner import InputValidationError, validate_distribution_spec

_DIGITS = re.compile(r"[0-9]+")


def parse_quantity(value: object) -> int:
    """Accept an integer or a string of ASCII decimal digits; never a float."""
    if isinstance(value, bool):
        raise ValueError("Quantity must be an integer.")
    if isinstance(value, int):
        quantity = value
    elif isinstance(value, str) and _DIGITS.fullmatch(value.strip()):
        quantity = int(value.strip())
    else:
        raise ValueError(f"Quantity must be an integer, got {value!r}.")
    if quantity < 0:
        raise ValueError("Quantity must be non-negative.")
    return quantity


class DistributionEntry(BaseModel):
    validator: str = Field(min_length=1)
    quantity: int

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, value: object) -> int:
        return parse_quantity(value)


class DistributionDocument(BaseModel):
    stakeholders: List[str]
    fee: int
    distributions: List[DistributionEntry]

    @field_validator("fee", mode="before")
    @classmethod
    def _fee(cls, value: object) -> int:
        return parse_quantity(value)

    @field_validator("stakeholders")
    @classmethod
    def _stakeholders(cls, value: List[str]) -> List[str]:
        if any(not entry for entry in value):
            raise ValueError("Stakeholder addresses must be non-empty.")
        return value

    def to_spec(self) -> DistributionSpec:
        spec = DistributionSpec(
            stakeholders=tuple(self.stakeholders),
            fee=self.fee,
            distributions=tuple(
                Distribution(validator=entry.validator, quantity=entry.quantity)
                for entry in self.distributions
            ),
        )
        validate_distribution_spec(spec)
        return spec


class DelegationEntry(BaseModel):
    delegatee: str = Field(min_length=1)
    quantity: int

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, value: object) -> int:
        return parse_quantity(value)


class HoldingEntry(BaseModel):
    address: str = Field(min_length=1)
    undelegated: int = 0
    delegations: List[DelegationEntry] = Field(default_factory=list)

    @field_validator("undelegated", mode="before")
    @classmethod
    def _undelegated(cls, value: object) -> int:
        return parse_quantity(value)

    def to_holding(self) -> StakeHolding:
        return StakeHolding(
            account=self.address,
            undelegated=self.undelegated,
            delegations=tuple(
                Delegation(delegatee=entry.delegatee, quantity=entry.quantity)
                for entry in self.delegations
            ),
        )


class SnapshotDocument(BaseModel):
    height: int = Field(default=0, ge=0)
    accounts: List[HoldingEntry]

    def to_snapshot(self) -> StakeSnapshot:
        addresses = [entry.address for entry in self.accounts]
        if len(set(addresses)) != len(addresses):
            raise InputValidationError("Duplicated account entries in snapshot.")
        return StakeSnapshot(
            height=self.height,
            holdings=tuple(entry.to_holding() for entry in self.accounts),
        )


def distribution_from_dict(data: object) -> DistributionSpec:
    try:
        document = DistributionDocument.model_validate(data)
    except ValidationError as exc:
        raise InputValidationError(_describe(exc)) from exc
    return document.to_spec()


def snapshot_from_dict(data: object) -> StakeSnapshot:
    try:
        document = SnapshotDocument.model_validate(data)
    except ValidationError as exc:
        raise InputValidationError(_describe(exc)) from exc
    return document.to_snapshot()


def load_distribution(path: Union[str, Path]) -> DistributionSpec:
    return distribution_from_dict(read_json(path))


def read_json(path: Union[str, Path]) -> object:
    try:
        return json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise InputValidationError(f"{path} is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise InputValidationError(f"Cannot read {path}: {exc}") from exc


def _describe(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(messages)

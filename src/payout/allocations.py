"""Allocation sources: plain ``recipient,amount`` CSVs and bid exports."""

import csv
import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from xrpl.core.addresscodec import is_valid_classic_address

from payout.errors import InputError

log = logging.getLogger("payout.allocations")


@dataclass
class Allocation:
    recipient: str
    amount: Decimal


def _check_address(value: str) -> str:
    if not is_valid_classic_address(value):
        raise ValueError(f"not a valid address: {value!r}")
    return value


class AllocationRow(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    recipient: str
    amount: Decimal = Field(ge=0)

    @field_validator("recipient")
    @classmethod
    def check_recipient(cls, value: str) -> str:
        return _check_address(value)


class Bid(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    primary_address: str
    accepted_amount_dollars: Decimal = Field(ge=0)

    @field_validator("primary_address")
    @classmethod
    def check_primary_address(cls, value: str) -> str:
        return _check_address(value)


def create_allocation(bid: Bid, dollars_per_token: Decimal) -> Allocation:
    return Allocation(
        recipient=bid.primary_address,
        amount=bid.accepted_amount_dollars / dollars_per_token,
    )


def _read_rows(input_csv: str | Path):
    try:
        with open(input_csv, newline="") as f:
            reader = csv.DictReader(f, skipinitialspace=True)
            for row in reader:
                yield reader.line_num, {
                    (k or "").strip(): v.strip() if isinstance(v, str) else v for k, v in row.items()
                }
    except OSError as e:
        raise InputError(f"Cannot read {input_csv}: {e}") from e
    except csv.Error as e:
        raise InputError(f"Malformed CSV {input_csv}: {e}") from e


def read_allocations(
    input_csv: str | Path,
    from_bids: bool = False,
    dollars_per_token: Decimal | None = None,
) -> list[Allocation]:
    """Parse every row of ``input_csv`` into an Allocation.

    In bid mode rows are ``primary_address,accepted_amount_dollars`` and the
    token amount is the dollar value divided by ``dollars_per_token``. Any bad
    row fails the whole read; a partial list is never returned.
    """
    if from_bids:
        if dollars_per_token is None:
            raise InputError("Reading bids requires a dollars-per-token price")
        if dollars_per_token <= 0:
            raise InputError(f"Invalid dollars-per-token price: {dollars_per_token}")

    allocations = []
    for line, row in _read_rows(input_csv):
        try:
            if from_bids:
                allocations.append(create_allocation(Bid.model_validate(row), dollars_per_token))
            else:
                entry = AllocationRow.model_validate(row)
                allocations.append(Allocation(recipient=entry.recipient, amount=entry.amount))
        except ValidationError as e:
            raise InputError(f"{input_csv}:{line}: {e}") from e
    log.debug("Read %d allocations from %s", len(allocations), input_csv)
    return allocations


def merge_allocations(allocations: list[Allocation]) -> list[Allocation]:
    allocation_map: dict[str, Allocation] = {}
    for allocation in allocations:
        merged = allocation_map.setdefault(
            allocation.recipient, Allocation(recipient=allocation.recipient, amount=Decimal(0))
        )
        merged.amount += allocation.amount
    return list(allocation_map.values())

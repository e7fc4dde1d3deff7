"""Ledger configuration."""

from enum import Enum

from pydantic import BaseModel, Field


class NumberingStrategyName(str, Enum):
    """Available document numbering strategies."""

    COUNT = "count"  # rows for the company + 1 (legacy compatible)
    SCAN = "scan"  # max numeric suffix for the year + 1, timestamp fallback
    SEQUENCE = "sequence"  # atomic per-year counter row


def _default_strategies() -> dict[str, NumberingStrategyName]:
    return {
        "quotation": NumberingStrategyName.SEQUENCE,
        "invoice": NumberingStrategyName.SEQUENCE,
        "lpo": NumberingStrategyName.SEQUENCE,
        "credit_note": NumberingStrategyName.SEQUENCE,
        "payment": NumberingStrategyName.SEQUENCE,
        "proforma": NumberingStrategyName.SCAN,
    }


class LedgerConfig(BaseModel):
    """
    Ledger configuration.

    Strategy keys are DocumentType values. Unknown document types fall back
    to the sequence strategy.
    """

    numbering_strategies: dict[str, NumberingStrategyName] = Field(
        default_factory=_default_strategies,
        description="Numbering strategy per document type",
    )
    sequence_padding: int = Field(
        default=4,
        description="Minimum digits in the sequence part of a document number",
        ge=1,
        le=10,
    )
    number_retry_attempts: int = Field(
        default=3,
        description="How many fresh numbers to try when an insert hits a duplicate number",
        ge=1,
        le=10,
    )
    allow_overpayment: bool = Field(
        default=True,
        description="Accept payments larger than the invoice balance (balance goes negative)",
    )
    default_list_limit: int = Field(
        default=50,
        description="Default page size for list queries",
        ge=1,
        le=500,
    )

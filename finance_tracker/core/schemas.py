import math
from datetime import date as Date
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .categories import FIXED_CATEGORIES, MISCELLANEOUS


class ExtractedTransaction(BaseModel):
    date: Optional[Date] = Field(None, description="Calendar date, None when the source date did not parse.")
    raw_date: Optional[str] = Field(None, description="Date string as printed on the statement.")
    merchant: str = Field(..., min_length=1, description="Short counterparty label.")
    amount: float = Field(..., description="Signed amount: expenses negative, income positive.")
    category: str = Field(MISCELLANEOUS, description="One of FIXED_CATEGORIES.")
    description: str = Field(..., min_length=1, description="Text backing the extraction.")
    user_id: Union[int, str] = Field(..., description="Owner, attached by the ingestor.")
    source: str = Field("pattern", description="'ai' or 'pattern'.")

    @field_validator("merchant", "description", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if value is None:
            return value
        return " ".join(str(value).split())

    @field_validator("amount")
    @classmethod
    def _finite_amount(cls, value):
        if not math.isfinite(value):
            raise ValueError("amount must be a finite number")
        return value

    @field_validator("category")
    @classmethod
    def _known_category(cls, value):
        if value not in FIXED_CATEGORIES:
            raise ValueError(f"unknown category {value!r}")
        return value


class StatementFormatProfile(BaseModel):
    """What the format-detection pass learned about one statement."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bank_name: Optional[str] = Field(None, alias="bankName")
    date_format: Optional[str] = Field(None, alias="dateFormat")
    structure: Optional[str] = None
    amount_format: Optional[str] = Field(None, alias="amountFormat")
    transaction_type: Optional[str] = Field(None, alias="transactionType")

    @field_validator("*", mode="before")
    @classmethod
    def _as_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)


class AITransaction(BaseModel):
    """One item of the model's `transactions` array, before normalization."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: Optional[str] = None
    merchant: str = Field(..., min_length=1)
    amount: float
    is_deposit: bool = Field(False, alias="isDeposit")
    category: Optional[str] = None

    @field_validator("date", "merchant", "category", mode="before")
    @classmethod
    def _as_text(cls, value):
        if value is None:
            return value
        return " ".join(str(value).split())

    @field_validator("is_deposit", mode="before")
    @classmethod
    def _missing_flag_is_expense(cls, value):
        return False if value is None else value

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value):
        if isinstance(value, str):
            value = value.replace("$", "").replace(",", "").strip()
        return value

    @field_validator("amount")
    @classmethod
    def _finite_amount(cls, value):
        if not math.isfinite(value):
            raise ValueError("amount must be a finite number")
        return value


class ChunkResponse(BaseModel):
    transactions: list[Any] = Field(default_factory=list)

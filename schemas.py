# schemas.py
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PayloadError

from errors import ValidationError

MAX_PAYMENT_AMOUNT = 999999
ELECTRONIC_METHODS = ('bkash', 'bank_transfer')


class PaymentInput(BaseModel):
    customer_id: int
    amount: float = Field(gt=0, le=MAX_PAYMENT_AMOUNT, allow_inf_nan=False)
    method: Literal['cash', 'bkash', 'bank_transfer', 'due']
    transaction_id: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode='after')
    def transaction_id_for_electronic_methods(self):
        self.transaction_id = (self.transaction_id or '').strip() or None
        if self.method in ELECTRONIC_METHODS and not self.transaction_id:
            raise ValueError("Transaction ID is required for bKash and Bank Transfer")
        return self


class PackageChangeSubmission(BaseModel):
    customer_id: int
    current_package_id: int
    requested_package_id: int
    user_id: str = Field(min_length=1)
    password: str = Field(min_length=1)


class PackageChangeDecision(BaseModel):
    request_id: int
    admin_notes: Optional[str] = Field(default=None, max_length=500)


def _describe(exc):
    parts = []
    for error in exc.errors():
        field = '.'.join(str(part) for part in error['loc'])
        message = error['msg'].removeprefix('Value error, ')
        parts.append(f"{field}: {message}" if field else message)
    return '; '.join(parts)


def parse_payload(model, **values):
    """Build ``model`` from raw input, raising the API's ValidationError."""
    try:
        return model(**values)
    except PayloadError as exc:
        raise ValidationError(_describe(exc)) from exc

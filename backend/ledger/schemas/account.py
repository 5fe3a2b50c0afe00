"""Account schemas."""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal


class AccountCreate(BaseModel):
    """Schema for opening a cash account."""
    name: str = Field(..., min_length=1, max_length=100)
    balance: Decimal = Field(default=Decimal("0"), ge=0, description="Opening balance")


class AccountResponse(BaseModel):
    """Schema for account response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    balance: Decimal
    created_at: datetime

from decimal import Decimal

from pydantic import BaseModel, Field


class RecoveryCostUpdate(BaseModel):
    recovery_cost_charged: Decimal = Field(..., description="Recovery cost charged to the establishment")

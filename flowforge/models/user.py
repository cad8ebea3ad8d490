from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    max_designs: int = 3
    created_at: Optional[datetime] = None

    @property
    def unlimited_designs(self) -> bool:
        return self.max_designs == -1

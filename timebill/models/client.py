from pydantic import BaseModel, Field
from .common import gen_id

class Client(BaseModel):
    id: str = Field(default_factory=gen_id)
    name: str
    hourly_rate: float = 0.0

    class Config:
        extra = "ignore"

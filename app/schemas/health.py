from pydantic import BaseModel
from typing import Literal

class HealthStatus(BaseModel):
    status: Literal["UP", "DEGRADED"]
    database: Literal["CONNECTED", "DISCONNECTED"]
    cache: Literal["CONNECTED", "DISCONNECTED", "DISABLED"]
    timestamp: str

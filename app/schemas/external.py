from typing import Any

from pydantic import BaseModel


class ExternalDataOut(BaseModel):
    data: Any

from pydantic import BaseModel, Field
from typing import Literal, Optional, get_args

SizeCode = Literal["XS", "S", "M", "L", "XL", "XXL"]

SIZE_CODES: tuple[str, ...] = get_args(SizeCode)
DEFAULT_SIZE: SizeCode = "M"

class TryOnPayload(BaseModel):
    personImage: str
    productImage: str
    productName: str = Field(max_length=200)

class SizeResult(BaseModel):
    size: SizeCode
    productName: str

class TryOnResult(BaseModel):
    image: str
    productName: str
    requestId: Optional[str] = None

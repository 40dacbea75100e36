from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional

Dir = Literal["asc", "desc"]

# Allow-listed field name -> exact value or Range
FilterExpression = Dict[str, Any]

class Range(BaseModel):
    gte: Any = None
    lte: Any = None

class SortSpec(BaseModel):
    field: str
    dir: Dir

class SearchToken(BaseModel):
    text: str
    pattern: str
    number: Optional[int] = None

class ListRequest(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)
    sort: SortSpec = SortSpec(field="createdAt", dir="desc")
    filters: FilterExpression = {}
    search: Optional[SearchToken] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

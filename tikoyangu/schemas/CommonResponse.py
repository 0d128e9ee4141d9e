from typing import Generic, List, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")

class ApiResponse(BaseModel, Generic[T]):
    success: bool
    statusCode: int
    message: str
    data: Optional[T] = None





class PageMeta(BaseModel):
    limit: int
    offset: int
    total: int
    has_next: bool
    has_previous: bool




class PaginatedListResponse(BaseModel, Generic[T]):
    items: List[T]
    pagination: PageMeta

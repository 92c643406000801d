# blogapi/schemas/common.py
from math import ceil
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    current_page: int
    per_page: int
    total: int
    last_page: int
    data: list[T]

    @classmethod
    def build(cls, data: list, total: int, page: int, per_page: int) -> "Page[T]":
        return cls(
            current_page=page,
            per_page=per_page,
            total=total,
            last_page=max(1, ceil(total / per_page)),
            data=data,
        )


class Message(BaseModel):
    message: str

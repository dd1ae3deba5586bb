from __future__ import annotations

import math

from pydantic import BaseModel


# Upper bound on units in a single pledge or request.
MAX_UNITS = 1000


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=total, page=page, limit=limit, totalPages=math.ceil(total / limit) if limit else 0)
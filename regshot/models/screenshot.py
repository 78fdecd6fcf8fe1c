"""Screenshot record produced by the classifier."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Category = Literal["new", "deleted", "changed", "passed"]

# Fixed precedence used when grouping records by category.
CATEGORY_ORDER: tuple[Category, ...] = ("new", "deleted", "changed", "passed")


class Screenshot(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str  # SHA-256 hex digest of the path relative to actual/ (or expected/)
    name: str  # relative path without the .png extension
    category: Category
    # Paths relative to the output directory, e.g. "actual/Button/Primary.png"
    actual_path: Optional[str] = None
    expected_path: Optional[str] = None
    diff_path: Optional[str] = None
    approved: bool = False

    def to_api_dict(self) -> dict:
        """camelCase dict with absent paths omitted, as served to the review UI."""
        return self.model_dump(by_alias=True, exclude_none=True)

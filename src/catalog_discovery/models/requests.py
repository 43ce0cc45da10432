"""Request models for catalog crawls."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CatalogCrawlRequest(BaseModel):
    url: str
    bypass_cache: bool = False
    explore_filters: bool = True
    max_categories: Optional[int] = Field(default=None, ge=1)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("url must start with http:// or https://")
        return v

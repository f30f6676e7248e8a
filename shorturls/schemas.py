from pydantic import BaseModel
from typing import Any, List, Optional
from datetime import datetime

class ShortUrlCreate(BaseModel):
    # Non-strings reach the registry so the invalid-URL branch is logged
    url: Optional[Any] = None
    # Non-numeric or non-positive values fall back to the default window
    validity: Optional[Any] = None
    shortcode: Optional[str] = None

class ShortUrlResponse(BaseModel):
    shortLink: str
    expiry: datetime

class ClickOut(BaseModel):
    timestamp: datetime
    referrer: str
    geo: str

class ShortUrlStats(BaseModel):
    originalUrl: str
    createdAt: datetime
    expiry: datetime
    totalClicks: int
    clicks: List[ClickOut]

class ErrorResponse(BaseModel):
    error: str

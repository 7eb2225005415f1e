"""
Response models for the ingestion webhooks.
"""

from typing import List, Optional

from pydantic import BaseModel


class ShopifyIngestResponse(BaseModel):
    message: str
    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    promo_code_used: bool = False
    duplicate: bool = False


class GA4IngestResponse(BaseModel):
    message: str
    events_received: int
    orders_created: int
    duplicates: int
    events_skipped: int


class EndpointReadyResponse(BaseModel):
    message: str
    methods: List[str]
    description: str
    configured: bool

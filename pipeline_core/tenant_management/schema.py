"""
Tenant Pipeline API Schemas

Request and response models for lead intake and content introspection.
"""

from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class LeadApplyRequest(BaseModel):
    """Request model for submitting a new site lead."""

    business_name: str = Field(..., min_length=1, max_length=200, description="Business display name")
    contact_name: str = Field(..., min_length=1, max_length=100, description="Contact person")
    contact_email: EmailStr = Field(..., description="Contact email")

    website_url: str = Field(default="", max_length=500, description="Existing website, if any")
    contact_phone: str = Field(default="", max_length=50)
    category: str = Field(default="", max_length=100, description="Business category")
    region: str = Field(default="", max_length=100)
    goal: str = Field(default="", max_length=1000, description="What the site should achieve")
    notes: str = Field(default="", max_length=2000, description="Free-text notes")

    @field_validator(
        "business_name", "contact_name", "website_url", "contact_phone",
        "category", "region", "goal", "notes",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v: Optional[str]) -> str:
        return str(v or "").strip()

    class Config:
        json_schema_extra = {
            "example": {
                "business_name": "Acme Bakery",
                "contact_name": "Jane Doe",
                "contact_email": "jane@acme.example",
                "category": "bakery",
                "region": "Seoul",
                "goal": "Take pre-orders online",
            }
        }


class LeadApplyResponse(BaseModel):
    """Response model for an accepted lead."""

    ok: bool = True
    requestId: str = Field(..., description="Assigned request id")


class SiteHtmlResponse(BaseModel):
    """Content-introspection envelope served per hostname."""

    ok: bool
    kind: Literal["root", "tenant"]
    slug: Optional[str] = None
    html: Optional[str] = None
    source: Optional[str] = None
    version: Optional[str] = None
    error: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "ok": True,
                "kind": "tenant",
                "slug": "acme-1234",
                "html": "<!doctype html><html><head>...</head></html>",
                "source": "r2",
                "version": "vlx2k9a1b2c3d",
            }
        }

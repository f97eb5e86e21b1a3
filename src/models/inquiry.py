"""Property inquiry model - a buyer's request about a listing (property_inquiries table)."""

from typing import Any, Optional
from pydantic import BaseModel, Field


class PropertyInquiry(BaseModel):
    """Inquiry joined with its listing and the buyer's profile."""
    inquiry_id: str = Field(..., description="Inquiry ID")
    buyer_account_id: str = Field(..., description="Authenticated account ID of the buyer")
    property_id: Optional[str] = Field(None, description="Listing the buyer asked about")
    property_address: Optional[str] = Field(None, description="Listing address")
    property_title: Optional[str] = Field(None, description="Listing title")
    buyer_name: Optional[str] = Field(None, description="Buyer full name from the profile")
    buyer_email: Optional[str] = Field(None, description="Buyer email from the profile")
    message: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PropertyInquiry":
        """Flatten a property_inquiries row with nested property_listings and profiles."""
        listing = row.get("property_listings") or {}
        profile = row.get("profiles") or {}
        return cls(
            inquiry_id=row.get("id") or row.get("inquiry_id"),
            buyer_account_id=row.get("buyer_id") or profile.get("id"),
            property_id=row.get("property_id"),
            property_address=listing.get("address"),
            property_title=listing.get("title"),
            buyer_name=profile.get("full_name"),
            buyer_email=profile.get("email"),
            message=row.get("message"),
            created_at=row.get("created_at"),
        )

"""Request bodies accepted by the API.

Field names follow the JSON the clients send (camelCase).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)
    role: Optional[str] = Field(default=None, pattern="^(customer|seller)$")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refreshToken: str = Field(..., min_length=1)


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=128)


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=r"^\d{6}$")


class QRScanRequest(BaseModel):
    """Payload decoded from a login QR code."""

    sessionId: str = Field(..., min_length=1)
    qrToken: str = Field(..., min_length=1)


class ProductCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    price: int = Field(..., ge=0, description="Price in cents")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    images: List[str] = Field(default_factory=list)
    stock: int = Field(default=0, ge=0)
    category: Optional[str] = None
    categoryId: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = None
    categoryId: Optional[str] = None
    tags: Optional[List[str]] = None


class CartItemCreate(BaseModel):
    productId: str
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class ShippingAddress(BaseModel):
    fullName: str
    addressLine1: str
    addressLine2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postalCode: str
    country: str
    phone: Optional[str] = None


class OrderCreate(BaseModel):
    shippingAddress: ShippingAddress
    paymentMethod: str = Field(..., min_length=1)
    notes: Optional[str] = Field(default=None, max_length=1000)
    couponCode: Optional[str] = Field(default=None, min_length=1, max_length=50)


class OrderStatusUpdate(BaseModel):
    status: str = Field(
        ..., pattern="^(pending|confirmed|processing|shipped|delivered|cancelled)$"
    )


class ShippingInfoUpdate(BaseModel):
    carrier: Optional[str] = None
    trackingNumber: Optional[str] = None
    estimatedDelivery: Optional[str] = None


class WishlistCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    isPublic: bool = False


class WishlistUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    isPublic: Optional[bool] = None


class WishlistItemCreate(BaseModel):
    productId: str
    notes: Optional[str] = Field(default=None, max_length=500)


class WishlistItemUpdate(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=500)


class FavoriteCreate(BaseModel):
    productId: str


class RatingCreate(BaseModel):
    productId: str
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(default=None, max_length=2000)


class RatingUpdate(BaseModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    review: Optional[str] = Field(default=None, max_length=2000)


class BehaviorEventCreate(BaseModel):
    eventType: str
    productId: Optional[str] = None
    categoryId: Optional[str] = None
    eventData: Dict[str, Any] = Field(default_factory=dict)


class RefreshRecommendationsRequest(BaseModel):
    """Which cached lists to drop. An empty body drops everything."""

    type: Optional[str] = Field(default=None, pattern="^(personalized|similar|trending)$")
    userId: Optional[str] = None
    productId: Optional[str] = None


class ScraperJobCreate(BaseModel):
    url: str = Field(..., pattern=r"^https?://")
    productId: Optional[str] = None
    selector: Optional[str] = None
    frequency: Optional[int] = Field(default=None, ge=1, description="Hours between scrapes")


class ScraperJobUpdate(BaseModel):
    url: Optional[str] = Field(default=None, pattern=r"^https?://")
    selector: Optional[str] = None
    frequency: Optional[int] = Field(default=None, ge=1)
    status: Optional[str] = Field(default=None, pattern="^(pending|running|completed|failed)$")


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = Field(default=None, max_length=1000)
    parentId: Optional[str] = None
    image: Optional[str] = None
    isActive: bool = True
    order: int = Field(default=0, ge=0)


class CategoryUpdate(BaseModel):
    """``parentId: null`` moves the category to the top level."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = Field(default=None, max_length=1000)
    parentId: Optional[str] = None
    image: Optional[str] = None
    isActive: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    discountType: str = Field(..., pattern="^(percentage|fixed)$")
    discountValue: int = Field(..., ge=0, description="Percent, or cents for fixed discounts")
    minPurchaseAmount: Optional[int] = Field(default=None, ge=0)
    maxDiscountAmount: Optional[int] = Field(default=None, ge=0)
    validFrom: Optional[datetime] = None
    validUntil: datetime
    usageLimit: Optional[int] = Field(default=None, ge=1)
    usageLimitPerUser: Optional[int] = Field(default=None, ge=1)
    applicableTo: str = Field(default="all", pattern="^(all|category|product)$")
    applicableCategories: List[str] = Field(default_factory=list)
    applicableProducts: List[str] = Field(default_factory=list)
    isActive: bool = True


class CouponUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=500)
    discountValue: Optional[int] = Field(default=None, ge=0)
    minPurchaseAmount: Optional[int] = Field(default=None, ge=0)
    maxDiscountAmount: Optional[int] = Field(default=None, ge=0)
    validFrom: Optional[datetime] = None
    validUntil: Optional[datetime] = None
    usageLimit: Optional[int] = Field(default=None, ge=1)
    usageLimitPerUser: Optional[int] = Field(default=None, ge=1)
    applicableTo: Optional[str] = Field(default=None, pattern="^(all|category|product)$")
    applicableCategories: Optional[List[str]] = None
    applicableProducts: Optional[List[str]] = None
    isActive: Optional[bool] = None


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)

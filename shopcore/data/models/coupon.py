# shopcore/data/models/coupon.py
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, JSON, UniqueConstraint, CheckConstraint,
)

from shopcore.data.database import Base
from shopcore.utils.clock import as_utc, utcnow

TYPE_PERCENTAGE = "percentage"
TYPE_FIXED = "fixed"


class CouponModel(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        UniqueConstraint("site_id", "code", name="u_coupon_site_code"),
        CheckConstraint(
            "valid_from IS NULL OR valid_until IS NULL OR valid_until > valid_from",
            name="ck_coupon_window",
        ),
        CheckConstraint(
            "max_usages IS NULL OR usage_count <= max_usages",
            name="ck_coupon_usage",
        ),
    )

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, nullable=False, index=True)
    code = Column(String(50), nullable=False)  # zawsze UPPER

    type = Column(String(20), nullable=False, default=TYPE_PERCENTAGE)
    value = Column(Numeric(12, 2), nullable=False)
    minimum_amount = Column(Numeric(12, 2), nullable=True)
    maximum_discount = Column(Numeric(12, 2), nullable=True)

    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)

    max_usages = Column(Integer, nullable=True)
    max_usages_per_user = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)

    allowed_customer_types = Column(JSON, nullable=True)  # None / [] = wszystkie segmenty
    public_message = Column(String(255), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        if self.valid_from is not None and as_utc(self.valid_from) > now:
            return True
        if self.valid_until is not None and as_utc(self.valid_until) < now:
            return True
        return False

    def is_exhausted(self) -> bool:
        if self.max_usages is None:
            return False
        return self.usage_count >= self.max_usages

    def remaining_usages(self) -> int | None:
        if self.max_usages is None:
            return None
        return max(0, self.max_usages - self.usage_count)

    def is_valid_for_segment(self, segment: str) -> bool:
        if not self.allowed_customer_types:
            return True
        return segment in self.allowed_customer_types

    def meets_minimum(self, subtotal: Decimal) -> bool:
        if self.minimum_amount is None:
            return True
        return subtotal >= self.minimum_amount

    @property
    def description(self) -> str:
        if self.type == TYPE_PERCENTAGE:
            return f"{self.value:.0f}% off"
        return f"{self.value:.2f} off"

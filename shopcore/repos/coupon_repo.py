# shopcore/repos/coupon_repo.py
from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import Session

from shopcore.data.models.coupon import CouponModel
from shopcore.data.models.order import OrderModel
from shopcore.domain.status import OrderStatus


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_coupon(self, coupon_id: int) -> CouponModel | None:
        return self.db.get(CouponModel, coupon_id)

    def find_by_code(self, code: str, site_id: int) -> CouponModel | None:
        # kody sa case-insensitive, usuniete (soft delete) nie istnieja
        return self.db.execute(
            select(CouponModel).where(
                func.upper(CouponModel.code) == code.strip().upper(),
                CouponModel.site_id == site_id,
                CouponModel.is_deleted.is_(False),
            )
        ).scalar_one_or_none()

    def create_coupon(self, coupon: CouponModel) -> CouponModel:
        self.db.add(coupon)
        self.db.flush()
        return coupon

    def increment_usage_if_available(self, coupon_id: int) -> int:
        # licznik + limit w jednym UPDATE, dwa rownolegle checkouty nie przekrocza max_usages
        result = self.db.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(
                    CouponModel.max_usages.is_(None),
                    CouponModel.usage_count < CouponModel.max_usages,
                ),
            )
            .values(usage_count=CouponModel.usage_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def count_usages_by_user(self, coupon_id: int, user_id: int) -> int:
        return self.db.execute(
            select(func.count(OrderModel.id)).where(
                OrderModel.coupon_id == coupon_id,
                OrderModel.user_id == user_id,
                OrderModel.status != OrderStatus.CANCELLED.value,
            )
        ).scalar_one()

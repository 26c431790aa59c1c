# shopcore/repos/order_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shopcore.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_reference(self, reference: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.reference == reference)
        ).scalar_one_or_none()

    def list_by_user(self, user_id: int, limit: int = 20) -> List[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .limit(limit)
            ).scalars().all()
        )

    def update_status(self, order_id: int, old_status: str, new_status: str, updated_at: datetime) -> int:
        #optimistic locking na statusie: update ... where id = :id and status = :old
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == old_status)
            .values(status=new_status, updated_at=updated_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def next_reference(self, now: datetime) -> str:
        #format YYYY-MM-NNNNN, sekwencja od nowa co miesiac
        prefix = now.strftime("%Y-%m")
        last = self.db.execute(
            select(OrderModel.reference)
            .where(OrderModel.reference.like(f"{prefix}-%"))
            .order_by(OrderModel.reference.desc())
            .limit(1)
        ).scalar_one_or_none()

        sequence = int(last[-5:]) + 1 if last else 1
        return f"{prefix}-{sequence:05d}"

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

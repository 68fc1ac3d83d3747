"""
折扣服务
折扣有效期两端包含；同一天只应用一个折扣，多个重叠时取开始日期最晚的
"""
from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional, Union
from sqlalchemy.orm import Session
from hotel_occupancy.models.ontology import Discount
from hotel_occupancy.models.schemas import DiscountCreate
from hotel_occupancy.exceptions import NotFound, Unauthorized, ValidationError

Number = Union[int, float, Decimal]


def apply_discount(base_rent: Number, percentage: Number) -> Decimal:
    """base_rent * (1 - percentage/100)，不做取整"""
    return Decimal(str(base_rent)) * (1 - Decimal(str(percentage)) / 100)


class DiscountService:
    """折扣服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_discounts(self) -> List[Discount]:
        """获取所有折扣（按开始日期倒序）"""
        return self.db.query(Discount).order_by(Discount.start_date.desc(), Discount.id.desc()).all()

    def get_discount(self, discount_id: int) -> Optional[Discount]:
        return self.db.query(Discount).filter(Discount.id == discount_id).first()

    def current_discount(self, as_of: Union[datetime, date, None] = None) -> Optional[Discount]:
        """获取 as_of 当天有效的折扣"""
        if as_of is None:
            as_of = date.today()
        day = as_of.date() if isinstance(as_of, datetime) else as_of
        return self.db.query(Discount).filter(
            Discount.start_date <= day,
            Discount.end_date >= day
        ).order_by(Discount.start_date.desc(), Discount.id.desc()).first()

    def apply(self, base_rent: Number, discount: Discount) -> Decimal:
        return apply_discount(base_rent, discount.percentage)

    def create_discount(self, data: DiscountCreate, created_by: int) -> Discount:
        """创建折扣"""
        if created_by is None:
            raise Unauthorized("缺少操作人")
        if data.end_date < data.start_date:
            raise ValidationError("结束日期不能早于开始日期")
        if not (0 < data.percentage <= 100):
            raise ValidationError("折扣比例必须在 0 到 100 之间")

        discount = Discount(**data.model_dump(), created_by=created_by)
        self.db.add(discount)
        self.db.commit()
        self.db.refresh(discount)
        return discount

    def delete_discount(self, discount_id: int) -> bool:
        """删除折扣"""
        discount = self.get_discount(discount_id)
        if not discount:
            raise NotFound("折扣不存在")

        self.db.delete(discount)
        self.db.commit()
        return True

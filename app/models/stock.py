import enum
from datetime import datetime
from app.extensions import db
from .base import BaseModel, enum_column


class MovementDirection(str, enum.Enum):
    """库存变动方向"""
    IN = 'in'    # 入库
    OUT = 'out'  # 出库

    @property
    def sign(self):
        return 1 if self is MovementDirection.IN else -1


class StockMovement(BaseModel):
    """
    库存流水（只追加，核心表）
    记录每一次库存变动，Product.stock_quantity 必须等于
    该商品全部流水按方向带符号求和的结果。
    """
    __tablename__ = 'stock_movements'
    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='ck_stock_movement_quantity_positive'),
    )

    REF_PURCHASE_ORDER = 'purchase_order'
    REF_SALES_ORDER = 'sales_order'
    REF_SALES_RETURN = 'sales_return'
    REF_ADJUSTMENT = 'adjustment'
    REF_OPENING = 'opening_balance'

    product_id = db.Column(db.Integer, db.ForeignKey('biz_products.id'), nullable=False, index=True)
    direction = enum_column(MovementDirection, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=False, index=True)
    reference_id = db.Column(db.Integer)  # 关联单据 ID（采购单/销售单）

    balance_after = db.Column(db.Integer, nullable=False)  # 变动后结余 (快照)
    notes = db.Column(db.String(255))
    created_by = db.Column(db.String(64))  # 操作人
    moved_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    product = db.relationship('Product')

    @property
    def signed_quantity(self):
        return self.direction.sign * self.quantity

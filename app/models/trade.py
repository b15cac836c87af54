import enum
from datetime import datetime
from app.extensions import db
from .base import BaseModel, enum_column


class OrderStatus(str, enum.Enum):
    """销售订单状态"""
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'

    @property
    def is_terminal(self):
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


# 合法流转表：主干 pending → confirmed → processing → shipped → delivered，
# 任一非终态均可取消
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class Order(BaseModel):
    """销售订单头"""
    __tablename__ = 'trade_orders'

    order_number = db.Column(db.String(40), unique=True, index=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('biz_customers.id'), nullable=False)
    created_by = db.Column(db.String(64))  # 下单人（由调用方传入）

    status = enum_column(OrderStatus, default=OrderStatus.PENDING, index=True, nullable=False)
    order_date = db.Column(db.DateTime, default=datetime.utcnow)
    required_date = db.Column(db.Date)
    shipped_date = db.Column(db.DateTime)
    delivered_date = db.Column(db.DateTime)

    subtotal = db.Column(db.Float, default=0.0, nullable=False)
    discount_amount = db.Column(db.Float, default=0.0, nullable=False)
    tax_amount = db.Column(db.Float, default=0.0, nullable=False)
    shipping_amount = db.Column(db.Float, default=0.0, nullable=False)
    total_amount = db.Column(db.Float, default=0.0, nullable=False)

    shipping_address = db.Column(db.String(256))
    payment_method = db.Column(db.String(32))
    notes = db.Column(db.Text)

    # 关系
    customer = db.relationship('Customer', back_populates='orders')
    items = db.relationship('OrderItem', back_populates='order',
                            order_by='OrderItem.id', cascade='all, delete-orphan')
    status_history = db.relationship('OrderStatusEntry', back_populates='order',
                                     order_by='OrderStatusEntry.id')

    def to_dict(self, with_children=False):
        data = super().to_dict()
        if with_children:
            data['items'] = [item.to_dict() for item in self.items]
            data['status_history'] = [entry.to_dict() for entry in self.status_history]
        return data


class OrderItem(BaseModel):
    """订单明细行"""
    __tablename__ = 'trade_order_items'
    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='ck_order_item_quantity_positive'),
        db.CheckConstraint('unit_price > 0', name='ck_order_item_price_positive'),
    )

    order_id = db.Column(db.Integer, db.ForeignKey('trade_orders.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('biz_products.id'), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)  # 下单时的单价快照
    discount_percentage = db.Column(db.Float, default=0.0, nullable=False)  # 0 ~ 1 的折扣比例
    total_price = db.Column(db.Float, nullable=False)

    order = db.relationship('Order', back_populates='items')
    product = db.relationship('Product')


class OrderStatusEntry(BaseModel):
    """
    订单状态历史（只追加）
    写入后不可修改、不可删除，由 app.models.guards 在 flush 前拦截。
    """
    __tablename__ = 'trade_order_status_history'

    order_id = db.Column(db.Integer, db.ForeignKey('trade_orders.id'), nullable=False, index=True)
    status = enum_column(OrderStatus, nullable=False)
    notes = db.Column(db.String(255))
    changed_by = db.Column(db.String(64))
    changed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    order = db.relationship('Order', back_populates='status_history')

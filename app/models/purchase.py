"""采购管理模型"""
import enum
from datetime import datetime
from app.extensions import db
from .base import BaseModel, enum_column


class PurchaseOrderStatus(str, enum.Enum):
    """采购订单状态"""
    PENDING = 'pending'        # 待审批
    CONFIRMED = 'confirmed'    # 已审批（已下单给供应商）
    RECEIVED = 'received'      # 已全部收货
    CANCELLED = 'cancelled'    # 已取消

    @property
    def accepts_receipts(self):
        return self in (PurchaseOrderStatus.PENDING, PurchaseOrderStatus.CONFIRMED)


class PurchaseOrder(BaseModel):
    """采购订单"""
    __tablename__ = 'purchase_orders'

    po_number = db.Column(db.String(40), unique=True, index=True, nullable=False)  # 采购单号
    supplier_id = db.Column(db.Integer, db.ForeignKey('biz_suppliers.id'), nullable=False)

    status = enum_column(PurchaseOrderStatus, default=PurchaseOrderStatus.PENDING,
                         index=True, nullable=False)

    subtotal = db.Column(db.Float, default=0.0, nullable=False)
    tax_amount = db.Column(db.Float, default=0.0, nullable=False)
    total_amount = db.Column(db.Float, default=0.0, nullable=False)

    order_date = db.Column(db.DateTime, default=datetime.utcnow)
    expected_date = db.Column(db.Date)          # 预计到货日期
    actual_delivery_date = db.Column(db.Date)   # 全部到货日期

    # 审批信息
    created_by = db.Column(db.String(64))
    approved_by = db.Column(db.String(64))
    approved_at = db.Column(db.DateTime)

    notes = db.Column(db.Text)

    # 关系
    supplier = db.relationship('Supplier')
    items = db.relationship('PurchaseOrderItem', back_populates='purchase_order',
                            order_by='PurchaseOrderItem.id', cascade='all, delete-orphan')

    @property
    def received_amount(self):
        """已收货金额"""
        return round(sum([item.quantity_received * item.unit_cost for item in self.items]), 2)

    @property
    def receive_progress(self):
        """收货进度百分比"""
        total_qty = sum([item.quantity_ordered for item in self.items])
        received_qty = sum([item.quantity_received for item in self.items])
        if total_qty == 0:
            return 0
        return round(received_qty / total_qty * 100, 1)

    @property
    def is_fully_received(self):
        return bool(self.items) and all(item.is_fully_received for item in self.items)

    def to_dict(self, with_children=False):
        data = super().to_dict()
        data['receive_progress'] = self.receive_progress
        if with_children:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(BaseModel):
    """采购订单明细"""
    __tablename__ = 'purchase_order_items'
    __table_args__ = (
        db.CheckConstraint('quantity_ordered > 0', name='ck_po_item_ordered_positive'),
        db.CheckConstraint('quantity_received >= 0', name='ck_po_item_received_non_negative'),
        db.CheckConstraint('quantity_received <= quantity_ordered', name='ck_po_item_no_over_receipt'),
    )

    purchase_order_id = db.Column(db.Integer, db.ForeignKey('purchase_orders.id'),
                                  nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('biz_products.id'), nullable=False)

    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, default=0, nullable=False)  # 已收货数量
    unit_cost = db.Column(db.Float, nullable=False)  # 采购单价
    line_total = db.Column(db.Float, nullable=False)

    received_date = db.Column(db.Date)
    received_by = db.Column(db.String(64))

    purchase_order = db.relationship('PurchaseOrder', back_populates='items')
    product = db.relationship('Product')

    @property
    def quantity_pending(self):
        """待收货数量"""
        return self.quantity_ordered - self.quantity_received

    @property
    def is_fully_received(self):
        return self.quantity_received >= self.quantity_ordered

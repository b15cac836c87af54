from app.extensions import db
from .base import BaseModel


class Customer(BaseModel):
    """客户"""
    __tablename__ = 'biz_customers'

    TYPE_INDIVIDUAL = 'individual'
    TYPE_BUSINESS = 'business'

    customer_code = db.Column(db.String(40), unique=True, index=True, nullable=False)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(128))
    phone = db.Column(db.String(32))
    address = db.Column(db.String(256))
    customer_type = db.Column(db.String(20), default=TYPE_INDIVIDUAL)
    registration_date = db.Column(db.Date)
    is_active = db.Column(db.Boolean, default=True)

    orders = db.relationship('Order', back_populates='customer', lazy='dynamic')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Supplier(BaseModel):
    """供应商"""
    __tablename__ = 'biz_suppliers'

    name = db.Column(db.String(128), index=True, nullable=False)
    contact_person = db.Column(db.String(64))
    phone = db.Column(db.String(32))
    email = db.Column(db.String(128))
    address = db.Column(db.String(256))
    is_active = db.Column(db.Boolean, default=True)


class Product(BaseModel):
    """
    产品主表
    stock_quantity 只能由库存台账 (StockLedger) 修改，
    其值必须等于该商品全部库存流水的带符号合计。
    """
    __tablename__ = 'biz_products'

    sku = db.Column(db.String(64), unique=True, index=True)  # 唯一货号
    name = db.Column(db.String(128), index=True)
    price = db.Column(db.Float, default=0.0)  # 建议零售价
    cost = db.Column(db.Float, default=0.0)   # 成本价

    stock_quantity = db.Column(db.Integer, default=0, nullable=False)
    reorder_level = db.Column(db.Integer, default=10)  # 低于此值需补货

    @property
    def is_low_stock(self):
        return self.stock_quantity <= (self.reorder_level or 0)

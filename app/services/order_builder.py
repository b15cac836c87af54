"""
订单聚合构建
校验原始下单数据并计算金额，全部校验通过后才领取订单号；
构建结果是尚未加入 session 的订单头与明细，不产生任何写入。
"""
from collections import namedtuple

from flask import current_app
from sqlalchemy import select

from app.extensions import db
from app.exceptions import ValidationError, NotFoundError
from app.models.biz import Customer, Product
from app.models.trade import Order, OrderItem
from app.services.identifier_service import IdentifierGenerator
from app.utils.validators import (
    is_number, positive_id, positive_int, positive_amount, non_negative_amount, as_date
)

OrderDraft = namedtuple('OrderDraft', ['order', 'items', 'degraded'])

# 调用方可附带的其余订单头字段
HEADER_FIELDS = ('shipping_address', 'payment_method', 'notes', 'required_date')


def line_total(quantity, unit_price, discount_percentage=0.0):
    """明细金额 = 数量 × 单价 × (1 − 折扣比例)"""
    return round(quantity * unit_price * (1 - discount_percentage), 2)


def validate_order_input(customer_id, raw_items):
    """
    纯校验，不访问数据库
    :param raw_items: [{'product_id': 1, 'quantity': 2, 'unit_price': 100.0, 'discount_percentage': 0.1}, ...]
    :return: 规范化后的明细列表
    """
    positive_id(customer_id, 'customer_id')
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError("订单至少需要一条商品明细", field='items')

    lines = []
    for idx, raw in enumerate(raw_items):
        prefix = f'items[{idx}]'
        if not isinstance(raw, dict):
            raise ValidationError(f"{prefix} 格式错误", field=prefix)
        product_id = positive_id(raw.get('product_id'), f'{prefix}.product_id')
        quantity = positive_int(raw.get('quantity'), f'{prefix}.quantity')
        unit_price = positive_amount(raw.get('unit_price'), f'{prefix}.unit_price')

        discount = raw.get('discount_percentage') or 0.0
        if not is_number(discount) or not 0 <= discount < 1:
            raise ValidationError("折扣比例必须在 [0, 1) 区间内", field=f'{prefix}.discount_percentage')

        lines.append({
            'product_id': product_id,
            'quantity': quantity,
            'unit_price': unit_price,
            'discount_percentage': float(discount),
        })
    return lines


class OrderBuilder:
    """销售订单聚合构建器"""

    def __init__(self, identifiers=None):
        self.identifiers = identifiers or IdentifierGenerator()

    def build(self, customer_id, raw_items, discount_amount=0.0, shipping_amount=0.0,
              actor_id=None, **header):
        """
        校验并构建订单
        :param header: 其余订单头字段 (shipping_address / payment_method / notes / required_date)
        :return: OrderDraft(order, items, degraded)
        """
        # 1. 结构校验
        unknown = set(header) - set(HEADER_FIELDS)
        if unknown:
            raise ValidationError(f"不支持的订单字段: {sorted(unknown)}", field=sorted(unknown)[0])
        if header.get('required_date') is not None:
            header['required_date'] = as_date(header['required_date'], 'required_date')
        lines = validate_order_input(customer_id, raw_items)
        customer_id = int(customer_id)
        discount_amount = non_negative_amount(discount_amount, 'discount_amount')
        shipping_amount = non_negative_amount(shipping_amount, 'shipping_amount')

        # 2. 引用校验（只读）
        if db.session.get(Customer, customer_id) is None:
            raise NotFoundError(f"客户不存在: {customer_id}", field='customer_id')
        product_ids = {line['product_id'] for line in lines}
        found = set(db.session.execute(
            select(Product.id).where(Product.id.in_(product_ids))
        ).scalars())
        missing = sorted(product_ids - found, key=str)
        if missing:
            raise NotFoundError(f"商品不存在: {missing}", field='items.product_id',
                                payload={'missing': missing})

        # 3. 计算金额
        items = [
            OrderItem(
                product_id=line['product_id'],
                quantity=line['quantity'],
                unit_price=line['unit_price'],
                discount_percentage=line['discount_percentage'],
                total_price=line_total(line['quantity'], line['unit_price'], line['discount_percentage']),
            )
            for line in lines
        ]
        subtotal = round(sum(item.total_price for item in items), 2)
        tax_amount = round(subtotal * current_app.config['TAX_RATE'], 2)
        total_amount = round(subtotal - discount_amount + tax_amount + shipping_amount, 2)
        if total_amount < 0:
            raise ValidationError("折扣金额超过订单金额", field='discount_amount')

        # 4. 校验全部通过后才领取订单号
        identifier = self.identifiers.next_order_number()

        order = Order(
            order_number=identifier.value,
            customer_id=customer_id,
            created_by=actor_id,
            subtotal=subtotal,
            discount_amount=discount_amount,
            tax_amount=tax_amount,
            shipping_amount=shipping_amount,
            total_amount=total_amount,
            **header
        )
        return OrderDraft(order, items, identifier.degraded)

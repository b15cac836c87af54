from datetime import datetime

from flask import current_app
from sqlalchemy import select

from app.extensions import db
from app.exceptions import ValidationError, NotFoundError, ConflictError, StateError
from app.models.trade import Order, OrderStatusEntry, OrderStatus, ORDER_TRANSITIONS
from app.models.stock import StockMovement, MovementDirection
from app.services.inventory_service import StockLedger
from app.services.order_builder import OrderBuilder
from app.utils.transaction import atomic
from app.utils.validators import positive_id


def _coerce_status(status, field='status'):
    try:
        return OrderStatus(status)
    except ValueError:
        raise ValidationError(f"无效的订单状态: {status}", field=field) from None


class OrderWriter:
    """订单头、明细、首条状态历史作为一个原子单元写入"""

    @staticmethod
    def create_order(draft, initial_status=OrderStatus.PENDING, actor_id=None,
                     notes='Order created', created_at=None) -> Order:
        initial_status = _coerce_status(initial_status, 'initial_status')
        order = draft.order

        # 降级单号碰撞概率高，写入前先做重号检测
        if draft.degraded:
            exists = db.session.execute(
                select(Order.id).where(Order.order_number == order.order_number)
            ).first()
            if exists:
                raise ConflictError(f"订单号重复: {order.order_number}",
                                    payload={'order_number': order.order_number})

        with atomic('create_order'):
            order.status = initial_status
            order.items = list(draft.items)
            db.session.add(order)
            entry = OrderStatusEntry(
                order=order,
                status=initial_status,
                notes=notes,
                changed_by=actor_id,
            )
            if created_at is not None:
                entry.changed_at = created_at
                order.order_date = created_at
            db.session.add(entry)

        current_app.logger.info(
            f'🧾 订单 {order.order_number} 已创建: {len(draft.items)} 行, 合计 {order.total_amount:.2f}'
        )
        return order


class OrderStatusMachine:
    """
    订单状态机
    只接受 ORDER_TRANSITIONS 中的流转；订单状态更新与历史追加在同一事务中完成。
    发货时按明细出库，已发货订单取消时按明细退回入库。
    """

    @staticmethod
    def transition_status(order_id, new_status, notes=None, actor_id=None, changed_at=None):
        order_id = positive_id(order_id, 'order_id')
        new_status = _coerce_status(new_status)
        changed_at = changed_at or datetime.utcnow()

        with atomic('transition_status'):
            order = db.session.execute(
                select(Order)
                .where(Order.id == order_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if order is None:
                raise NotFoundError(f"订单不存在: {order_id}", field='order_id')

            current = order.status
            if new_status not in ORDER_TRANSITIONS[current]:
                raise StateError(
                    f"订单状态不允许从 {current.value} 变更为 {new_status.value}",
                    payload={'from': current.value, 'to': new_status.value},
                )

            if new_status is OrderStatus.SHIPPED:
                OrderStatusMachine._move_items(order, MovementDirection.OUT,
                                               StockMovement.REF_SALES_ORDER, actor_id)
                order.shipped_date = changed_at
            elif new_status is OrderStatus.DELIVERED:
                order.delivered_date = changed_at
            elif new_status is OrderStatus.CANCELLED and current is OrderStatus.SHIPPED:
                OrderStatusMachine._move_items(order, MovementDirection.IN,
                                               StockMovement.REF_SALES_RETURN, actor_id)

            order.status = new_status
            entry = OrderStatusEntry(
                order=order,
                status=new_status,
                notes=notes or f"Status changed to {new_status.value}",
                changed_by=actor_id,
                changed_at=changed_at,
            )
            db.session.add(entry)

        current_app.logger.info(
            f'🔁 订单 {order.order_number}: {current.value} -> {new_status.value} (by {actor_id})'
        )
        return entry

    @staticmethod
    def _move_items(order, direction, reference_type, actor_id):
        # 按商品 ID 顺序加锁，避免并发发货时互相等待
        for item in sorted(order.items, key=lambda i: i.product_id):
            StockLedger.apply_movement(
                item.product_id, direction, item.quantity, reference_type,
                reference_id=order.id, actor_id=actor_id,
                notes=f"{reference_type} {order.order_number}",
            )


class SalesService:
    """销售订单服务入口"""

    @staticmethod
    def create_order(customer_id, items_data, actor_id=None, discount_amount=0.0,
                     shipping_amount=0.0, builder=None, **header) -> Order:
        """
        创建销售订单
        :param items_data: [{'product_id': 1, 'quantity': 2, 'unit_price': 100.0}, ...]
        单号冲突时以新单号整单重建，最多 ORDER_CREATE_MAX_ATTEMPTS 次
        """
        builder = builder or OrderBuilder()
        attempts = current_app.config.get('ORDER_CREATE_MAX_ATTEMPTS', 3)
        for attempt in range(1, attempts + 1):
            draft = builder.build(customer_id, items_data, discount_amount=discount_amount,
                                  shipping_amount=shipping_amount, actor_id=actor_id, **header)
            try:
                return OrderWriter.create_order(draft, actor_id=actor_id)
            except ConflictError:
                current_app.logger.warning(
                    f'⚠️ 订单号冲突 ({attempt}/{attempts}): {draft.order.order_number}'
                )
                if attempt == attempts:
                    raise

    @staticmethod
    def transition_status(order_id, new_status, notes=None, actor_id=None, changed_at=None):
        return OrderStatusMachine.transition_status(order_id, new_status, notes=notes,
                                                    actor_id=actor_id, changed_at=changed_at)

    @staticmethod
    def get_order(order_id) -> Order:
        order_id = positive_id(order_id, 'order_id')
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFoundError(f"订单不存在: {order_id}", field='order_id')
        return order

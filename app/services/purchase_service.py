"""采购管理服务"""
from datetime import datetime, date

from flask import current_app
from sqlalchemy import select, update

from app.extensions import db
from app.exceptions import ValidationError, NotFoundError, ConflictError, StateError
from app.models.biz import Product, Supplier
from app.models.purchase import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus
from app.models.stock import StockMovement, MovementDirection
from app.services.identifier_service import IdentifierGenerator
from app.services.inventory_service import StockLedger
from app.utils.validators import positive_id, positive_int, positive_amount, as_date
from app.utils.transaction import atomic


class ReceivingTracker:
    """
    采购收货跟踪
    累计每行的实收数量，驱动库存台账入库，并在所有行收齐时把采购单置为已收货。
    加锁顺序固定为：先采购单，再按 ID 升序锁明细行。
    """

    @staticmethod
    def receive_line_item(line_item_id, quantity, received_date=None, actor_id=None):
        """
        单行收货（可部分、可重复）
        :return: (PurchaseOrderItem, PurchaseOrder)
        """
        line_item_id = positive_id(line_item_id, 'line_item_id')
        quantity = positive_int(quantity, 'quantity')
        received_date = as_date(received_date, 'received_date') or date.today()

        with atomic('receive_line_item'):
            po_id = db.session.execute(
                select(PurchaseOrderItem.purchase_order_id).where(PurchaseOrderItem.id == line_item_id)
            ).scalar_one_or_none()
            if po_id is None:
                raise NotFoundError(f"采购明细不存在: {line_item_id}", field='line_item_id')
            po = PurchaseService._lock(po_id)
            item = ReceivingTracker._receive(po, line_item_id, quantity, received_date, actor_id)
            ReceivingTracker._complete_if_received(po, received_date)
        return item, po

    @staticmethod
    def receive_items(po_id, receive_data, received_date=None, actor_id=None):
        """
        批量收货：全部成功或全部回滚
        :param receive_data: [{'item_id': 1, 'quantity': 5}, ...]
        """
        po_id = positive_id(po_id, 'po_id')
        if not isinstance(receive_data, (list, tuple)) or not receive_data:
            raise ValidationError("收货明细不能为空", field='items')
        lines = []
        for idx, data in enumerate(receive_data):
            if not isinstance(data, dict):
                raise ValidationError(f"items[{idx}] 格式错误", field=f'items[{idx}]')
            lines.append((positive_id(data.get('item_id'), f'items[{idx}].item_id'),
                          positive_int(data.get('quantity'), f'items[{idx}].quantity')))
        received_date = as_date(received_date, 'received_date') or date.today()

        with atomic('receive_items'):
            po = PurchaseService._lock(po_id)
            owned = set(db.session.execute(
                select(PurchaseOrderItem.id).where(PurchaseOrderItem.purchase_order_id == po.id)
            ).scalars())
            for item_id, quantity in sorted(lines, key=lambda line: line[0]):
                if item_id not in owned:
                    raise ValidationError(f"明细 {item_id} 不属于采购单 {po.po_number}", field='item_id')
                ReceivingTracker._receive(po, item_id, quantity, received_date, actor_id)
            ReceivingTracker._complete_if_received(po, received_date)
        return po

    @staticmethod
    def _receive(po, line_item_id, quantity, received_date, actor_id):
        # 1. 采购单已由调用方锁定，这里锁定明细行
        if not po.status.accepts_receipts:
            raise StateError(f"采购单 {po.po_number} 当前状态 ({po.status.value}) 不允许收货",
                             payload={'status': po.status.value})
        item = db.session.execute(
            select(PurchaseOrderItem)
            .where(PurchaseOrderItem.id == line_item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        if item.quantity_received + quantity > item.quantity_ordered:
            ReceivingTracker._reject_over_receipt(item, quantity)

        # 2. 相对累加，上限检查与写入在同一条语句中完成
        result = db.session.execute(
            update(PurchaseOrderItem)
            .where(PurchaseOrderItem.id == line_item_id)
            .where(PurchaseOrderItem.quantity_received + quantity <= PurchaseOrderItem.quantity_ordered)
            .values(quantity_received=PurchaseOrderItem.quantity_received + quantity)
            .execution_options(synchronize_session=False)
        )
        db.session.expire(item, ['quantity_received'])
        if result.rowcount == 0:
            ReceivingTracker._reject_over_receipt(item, quantity)

        # 3. 入库
        StockLedger.apply_movement(
            item.product_id, MovementDirection.IN, quantity, StockMovement.REF_PURCHASE_ORDER,
            reference_id=po.id, actor_id=actor_id, notes=f"采购入库 - {po.po_number}",
        )

        item.received_date = received_date
        item.received_by = actor_id
        current_app.logger.info(
            f'📥 {po.po_number} 明细 {item.id} 收货 {quantity}, 累计 {item.quantity_received}/{item.quantity_ordered}'
        )
        return item

    @staticmethod
    def _reject_over_receipt(item, quantity):
        raise ValidationError(
            f"超量收货！待收 {item.quantity_pending}, 本次 {quantity}",
            field='quantity',
            payload={'quantity_ordered': item.quantity_ordered,
                     'quantity_received': item.quantity_received,
                     'requested': quantity},
        )

    @staticmethod
    def _complete_if_received(po, received_date):
        """所有行收齐时置为已收货，否则保持不变"""
        db.session.flush()
        for item in po.items:
            db.session.expire(item, ['quantity_received'])
        if po.is_fully_received:
            po.status = PurchaseOrderStatus.RECEIVED
            po.actual_delivery_date = received_date
            current_app.logger.info(f'✅ 采购单 {po.po_number} 已全部到货')


class PurchaseService:
    """采购服务"""

    @staticmethod
    def create_purchase_order(supplier_id, items_data, actor_id=None, expected_date=None,
                              notes=None, identifiers=None):
        """
        创建采购订单
        :param items_data: [{'product_id': 1, 'quantity_ordered': 10, 'unit_cost': 50.0}, ...]
        """
        supplier_id = positive_id(supplier_id, 'supplier_id')
        if not isinstance(items_data, (list, tuple)) or not items_data:
            raise ValidationError("采购单至少需要一条商品明细", field='items')
        lines = []
        for idx, data in enumerate(items_data):
            prefix = f'items[{idx}]'
            if not isinstance(data, dict):
                raise ValidationError(f"{prefix} 格式错误", field=prefix)
            product_id = positive_id(data.get('product_id'), f'{prefix}.product_id')
            qty = positive_int(data.get('quantity_ordered'), f'{prefix}.quantity_ordered')
            unit_cost = positive_amount(data.get('unit_cost'), f'{prefix}.unit_cost')
            lines.append((product_id, qty, unit_cost))
        expected_date = as_date(expected_date, 'expected_date')

        if db.session.get(Supplier, supplier_id) is None:
            raise NotFoundError(f"供应商不存在: {supplier_id}", field='supplier_id')
        product_ids = {line[0] for line in lines}
        found = set(db.session.execute(select(Product.id).where(Product.id.in_(product_ids))).scalars())
        if product_ids - found:
            raise NotFoundError(f"商品不存在: {sorted(product_ids - found, key=str)}",
                                field='items.product_id')

        items = [
            PurchaseOrderItem(product_id=pid, quantity_ordered=qty, unit_cost=cost,
                              quantity_received=0, line_total=round(qty * cost, 2))
            for pid, qty, cost in lines
        ]
        subtotal = round(sum(item.line_total for item in items), 2)
        tax_amount = round(subtotal * current_app.config['TAX_RATE'], 2)

        identifier = (identifiers or IdentifierGenerator()).next_po_number()
        if identifier.degraded and db.session.execute(
                select(PurchaseOrder.id).where(PurchaseOrder.po_number == identifier.value)).first():
            raise ConflictError(f"采购单号重复: {identifier.value}")

        po = PurchaseOrder(
            po_number=identifier.value,
            supplier_id=supplier_id,
            status=PurchaseOrderStatus.PENDING,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=round(subtotal + tax_amount, 2),
            expected_date=expected_date,
            created_by=actor_id,
            notes=notes,
        )
        with atomic('create_purchase_order'):
            po.items = items
            db.session.add(po)

        current_app.logger.info(f'🛒 采购单 {po.po_number} 已创建, 合计 {po.total_amount:.2f}')
        return po

    @staticmethod
    def approve_purchase_order(po_id, actor_id=None):
        """审批：pending → confirmed"""
        with atomic('approve_purchase_order'):
            po = PurchaseService._lock(po_id)
            if po.status is not PurchaseOrderStatus.PENDING:
                raise StateError("只有待审批状态可以审批", payload={'status': po.status.value})
            po.status = PurchaseOrderStatus.CONFIRMED
            po.approved_by = actor_id
            po.approved_at = datetime.utcnow()
        return po

    @staticmethod
    def cancel_purchase_order(po_id, actor_id=None, notes=None):
        """取消：仅限尚未收货的 pending / confirmed 采购单"""
        with atomic('cancel_purchase_order'):
            po = PurchaseService._lock(po_id)
            if not po.status.accepts_receipts:
                raise StateError("当前状态不允许取消", payload={'status': po.status.value})
            if any(item.quantity_received > 0 for item in po.items):
                raise StateError("采购单已有到货，不能取消")
            po.status = PurchaseOrderStatus.CANCELLED
            po.notes = (po.notes or '') + f"\n[取消] {actor_id or ''} {notes or ''}".rstrip()
        return po

    @staticmethod
    def receive_line_item(line_item_id, quantity, received_date=None, actor_id=None):
        return ReceivingTracker.receive_line_item(line_item_id, quantity,
                                                  received_date=received_date, actor_id=actor_id)

    @staticmethod
    def receive_items(po_id, receive_data, received_date=None, actor_id=None):
        return ReceivingTracker.receive_items(po_id, receive_data,
                                              received_date=received_date, actor_id=actor_id)

    @staticmethod
    def get_purchase_order(po_id):
        po_id = positive_id(po_id, 'po_id')
        po = db.session.get(PurchaseOrder, po_id)
        if po is None:
            raise NotFoundError(f"采购单不存在: {po_id}", field='po_id')
        return po

    @staticmethod
    def _lock(po_id):
        po_id = positive_id(po_id, 'po_id')
        po = db.session.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == po_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if po is None:
            raise NotFoundError(f"采购单不存在: {po_id}", field='po_id')
        return po

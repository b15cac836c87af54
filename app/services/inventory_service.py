from collections import namedtuple

from flask import current_app
from sqlalchemy import case, func, select, update

from app.extensions import db
from app.exceptions import ValidationError, NotFoundError, StateError
from app.models.biz import Product
from app.models.stock import StockMovement, MovementDirection
from app.utils.transaction import atomic
from app.utils.validators import positive_id, positive_int

ReconciliationReport = namedtuple(
    'ReconciliationReport', ['product_id', 'stock_quantity', 'ledger_quantity', 'drift']
)


def _signed_quantity():
    return case(
        (StockMovement.direction == MovementDirection.IN, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )


class StockLedger:
    """
    库存台账
    Product.stock_quantity 的唯一写入口：每次变动同时写入一条流水，
    二者在同一事务中提交，保证 库存 == 流水带符号合计。
    """

    @staticmethod
    def apply_movement(product_id, direction, quantity, reference_type,
                       reference_id=None, actor_id=None, notes=None,
                       allow_negative=None, moved_at=None) -> int:
        """
        原子化库存变动
        :param quantity: 始终为正整数，方向由 direction 决定
        :param allow_negative: None 时取配置 ALLOW_NEGATIVE_STOCK
        :return: 变动后的库存数量
        """
        try:
            direction = MovementDirection(direction)
        except ValueError:
            raise ValidationError(f"无效的变动方向: {direction}", field='direction') from None
        product_id = positive_id(product_id, 'product_id')
        quantity = positive_int(quantity, 'quantity')
        if not reference_type:
            raise ValidationError("必须指定关联单据类型", field='reference_type')
        if allow_negative is None:
            allow_negative = current_app.config.get('ALLOW_NEGATIVE_STOCK', False)

        delta = direction.sign * quantity

        with atomic('apply_movement'):
            # 1. 锁定商品行 (PostgreSQL: SELECT ... FOR UPDATE)
            product = db.session.execute(
                select(Product)
                .where(Product.id == product_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if product is None:
                raise NotFoundError(f"商品不存在: {product_id}", field='product_id')

            # 2. 相对更新，库存检查与写入在同一条语句中完成
            stmt = (
                update(Product)
                .where(Product.id == product_id)
                .values(stock_quantity=Product.stock_quantity + delta)
                .execution_options(synchronize_session=False)
            )
            if delta < 0 and not allow_negative:
                stmt = stmt.where(Product.stock_quantity + delta >= 0)
            result = db.session.execute(stmt)
            if result.rowcount == 0:
                current = db.session.execute(
                    select(Product.stock_quantity).where(Product.id == product_id)
                ).scalar_one()
                raise StateError(
                    f"库存不足！当前库存: {current}, 尝试扣减: {quantity}",
                    payload={'product_id': product_id, 'available': current, 'requested': quantity},
                )
            db.session.expire(product, ['stock_quantity'])

            new_quantity = db.session.execute(
                select(Product.stock_quantity).where(Product.id == product_id)
            ).scalar_one()

            # 3. 记录库存流水
            movement = StockMovement(
                product_id=product_id,
                direction=direction,
                quantity=quantity,
                reference_type=reference_type,
                reference_id=reference_id,
                balance_after=new_quantity,
                notes=notes or f"Stock {direction.value} from {reference_type}",
                created_by=actor_id,
            )
            if moved_at is not None:
                movement.moved_at = moved_at
            db.session.add(movement)

        current_app.logger.info(
            f'📦 库存变动 product={product_id} {direction.value} {quantity} -> {new_quantity} ({reference_type})'
        )
        return new_quantity

    @staticmethod
    def ledger_quantity(product_id):
        """流水带符号合计"""
        return db.session.execute(
            select(func.coalesce(func.sum(_signed_quantity()), 0))
            .where(StockMovement.product_id == product_id)
        ).scalar_one()

    @staticmethod
    def reconcile(product_id):
        """对账：库存数量 vs 流水合计"""
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"商品不存在: {product_id}", field='product_id')
        ledger = int(StockLedger.ledger_quantity(product_id))
        return ReconciliationReport(product_id, product.stock_quantity, ledger,
                                    product.stock_quantity - ledger)

    @staticmethod
    def find_drift():
        """列出所有库存与流水不一致的商品"""
        ledger = (
            select(StockMovement.product_id.label('product_id'),
                   func.sum(_signed_quantity()).label('ledger_quantity'))
            .group_by(StockMovement.product_id)
            .subquery()
        )
        ledger_qty = func.coalesce(ledger.c.ledger_quantity, 0)
        rows = db.session.execute(
            select(Product.id, Product.stock_quantity, ledger_qty)
            .outerjoin(ledger, ledger.c.product_id == Product.id)
            .where(Product.stock_quantity != ledger_qty)
            .order_by(Product.id)
        ).all()
        return [ReconciliationReport(pid, qty, int(led), qty - int(led)) for pid, qty, led in rows]

    @staticmethod
    def movements(product_id):
        """商品库存流水（按发生顺序）"""
        return db.session.execute(
            select(StockMovement)
            .where(StockMovement.product_id == product_id)
            .order_by(StockMovement.id)
        ).scalars().all()

"""编号生成服务"""
import uuid
from collections import namedtuple
from datetime import datetime

from flask import current_app
from sqlalchemy import select, update

from app.extensions import db
from app.exceptions import ConflictError, StorageError
from app.models.sys import SequenceCounter
from app.utils.transaction import atomic

# degraded=True 表示序列不可用时的本地回退值，调用方需自行做重号检测
GeneratedIdentifier = namedtuple('GeneratedIdentifier', ['value', 'degraded'])


class SequenceService:
    """集中序列：每次调用在独立事务中递增并返回新值"""

    ORDER_NUMBER = 'order_number'
    CUSTOMER_CODE = 'customer_code'
    PO_NUMBER = 'po_number'

    @staticmethod
    def next_value(name):
        with atomic(f'sequence:{name}'):
            counter = db.session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.name == name)
                .with_for_update()
            ).scalar_one_or_none()
            if counter is None:
                db.session.add(SequenceCounter(name=name, current_value=0))
                db.session.flush()

            # 相对递增，由数据库保证并发下不丢号
            db.session.execute(
                update(SequenceCounter)
                .where(SequenceCounter.name == name)
                .values(current_value=SequenceCounter.current_value + 1)
                .execution_options(synchronize_session=False)
            )
            value = db.session.execute(
                select(SequenceCounter.current_value).where(SequenceCounter.name == name)
            ).scalar_one()
        return value


class IdentifierGenerator:
    """
    单号生成器
    首选集中序列；序列服务不可用时回退为本地时间戳 + UUID 片段，
    并以 degraded 标记告知调用方。
    """

    def __init__(self, sequence=None, clock=None):
        self._sequence = sequence or SequenceService.next_value
        self._clock = clock or datetime.now

    def next_order_number(self):
        prefix = current_app.config['ORDER_NUMBER_PREFIX']
        return self._generate(SequenceService.ORDER_NUMBER,
                              lambda seq, now: f"{prefix}-{now:%Y%m%d}-{seq:06d}",
                              prefix)

    def next_customer_code(self):
        prefix = current_app.config['CUSTOMER_CODE_PREFIX']
        return self._generate(SequenceService.CUSTOMER_CODE,
                              lambda seq, now: f"{prefix}-{seq:06d}",
                              prefix)

    def next_po_number(self):
        prefix = current_app.config['PO_NUMBER_PREFIX']
        return self._generate(SequenceService.PO_NUMBER,
                              lambda seq, now: f"{prefix}-{now:%Y%m%d}-{seq:06d}",
                              prefix)

    def _generate(self, name, formatter, prefix):
        now = self._clock()
        try:
            seq = self._sequence(name)
        except (StorageError, ConflictError) as e:
            fallback = f"{prefix}-{now:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:8].upper()}"
            current_app.logger.warning(
                f'⚠️ 序列 {name} 不可用，使用降级单号 {fallback}: {e.message}'
            )
            return GeneratedIdentifier(fallback, True)
        return GeneratedIdentifier(formatter(seq, now), False)


def next_order_number():
    return IdentifierGenerator().next_order_number()


def next_customer_code():
    return IdentifierGenerator().next_customer_code()

"""
只追加记录保护
订单状态历史与库存流水一经写入即不可修改、不可删除。
在 flush 之前检查 session 中的脏对象与待删除对象，违规即中止本次事务。
"""
from sqlalchemy import event
from sqlalchemy.orm import Session

from app.exceptions import ImmutableRecordError
from .stock import StockMovement
from .trade import OrderStatusEntry

APPEND_ONLY_MODELS = (OrderStatusEntry, StockMovement)


def _check_append_only(session, flush_context, instances):
    for obj in list(session.deleted):
        if isinstance(obj, APPEND_ONLY_MODELS):
            raise ImmutableRecordError(
                f"{obj.__tablename__} 记录只允许追加，禁止删除 (id={obj.id})",
                payload={'table': obj.__tablename__, 'id': obj.id},
            )
    for obj in list(session.dirty):
        if isinstance(obj, APPEND_ONLY_MODELS) and session.is_modified(obj, include_collections=False):
            raise ImmutableRecordError(
                f"{obj.__tablename__} 记录只允许追加，禁止修改 (id={obj.id})",
                payload={'table': obj.__tablename__, 'id': obj.id},
            )


def register_append_only_guard():
    """注册 flush 前检查（可重复调用）"""
    if not event.contains(Session, 'before_flush', _check_append_only):
        event.listen(Session, 'before_flush', _check_append_only)

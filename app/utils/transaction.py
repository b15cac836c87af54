"""
事务工具
核心操作的原子单元：全部成功才提交，任一步失败整体回滚。
"""
from contextlib import contextmanager
from contextvars import ContextVar

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from app.extensions import db
from app.exceptions import NexusException, ConflictError, StorageError

# 当前上下文中嵌套的 atomic() 层数，只有最外层负责提交/回滚
_depth = ContextVar('nexus_atomic_depth', default=0)


def _is_unique_violation(exc):
    return 'unique' in str(getattr(exc, 'orig', exc)).lower()


# PostgreSQL: 40P01 deadlock_detected, 40001 serialization_failure
RETRYABLE_SQLSTATES = ('40P01', '40001')


def _is_lock_conflict(exc):
    """死锁 / 串行化失败 / SQLite 写锁超时，整单重试即可"""
    orig = getattr(exc, 'orig', None)
    sqlstate = getattr(orig, 'sqlstate', None) or getattr(orig, 'pgcode', None)
    return sqlstate in RETRYABLE_SQLSTATES or 'database is locked' in str(orig).lower()


@contextmanager
def atomic(label='unit_of_work'):
    """
    原子单元
    使用方法:
        with atomic('create_order'):
            db.session.add(order)
            ...
    嵌套调用时加入外层事务，由最外层统一提交；
    SQLAlchemy 异常统一转换为 ConflictError / StorageError，业务异常原样抛出。
    """
    depth = _depth.get()
    token = _depth.set(depth + 1)
    try:
        if depth:
            yield db.session
            return
        try:
            yield db.session
            db.session.commit()
        except NexusException as e:
            db.session.rollback()
            current_app.logger.warning(f'↩️ [{label}] 已回滚: {e.error} - {e.message}')
            raise
        except IntegrityError as e:
            db.session.rollback()
            if _is_unique_violation(e):
                current_app.logger.warning(f'↩️ [{label}] 唯一约束冲突，已回滚: {e.orig}')
                raise ConflictError(f'{label}: 唯一约束冲突', payload={'detail': str(e.orig)}) from e
            current_app.logger.error(f'❌ [{label}] 约束校验失败，已回滚: {e.orig}')
            raise StorageError(f'{label}: 约束校验失败', payload={'detail': str(e.orig)}) from e
        except OperationalError as e:
            db.session.rollback()
            if _is_lock_conflict(e):
                current_app.logger.warning(f'↩️ [{label}] 锁冲突，已回滚: {e.orig}')
                raise ConflictError(f'{label}: 并发冲突，请重试', payload={'detail': str(e.orig)}) from e
            current_app.logger.error(f'❌ [{label}] 数据库错误，已回滚: {e}')
            raise StorageError(f'{label}: 数据库错误', payload={'detail': str(e)}) from e
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f'❌ [{label}] 数据库错误，已回滚: {e}')
            raise StorageError(f'{label}: 数据库错误', payload={'detail': str(e)}) from e
        except BaseException:
            db.session.rollback()
            raise
    finally:
        _depth.reset(token)

from app.extensions import db
from .base import BaseModel


class SequenceCounter(BaseModel):
    """
    集中维护的编号序列
    每个序列一行，递增在数据库侧以相对 UPDATE 完成，并发下不会重号。
    """
    __tablename__ = 'sys_sequence_counters'

    name = db.Column(db.String(50), unique=True, nullable=False)
    current_value = db.Column(db.BigInteger, default=0, nullable=False)

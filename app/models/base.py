import enum
from datetime import datetime, date
from app.extensions import db


class BaseModel(db.Model):
    """
    NEXUS 核心模型基类
    包含：ID主键, 创建时间, 更新时间, 序列化方法
    """
    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        """
        通用序列化方法：将模型转换为字典，便于 API 返回 JSON。
        过滤掉以 '_' 开头的私有属性。
        """
        data = {}
        for c in self.__table__.columns:
            if c.name.startswith('_'):
                continue
            val = getattr(self, c.name)
            if isinstance(val, (datetime, date)):
                data[c.name] = val.isoformat()
            elif isinstance(val, enum.Enum):
                data[c.name] = val.value
            else:
                data[c.name] = val
        return data


def enum_column(enum_cls, **kwargs):
    """以枚举值（而非成员名）落库的字符串枚举列"""
    return db.Column(
        db.Enum(
            enum_cls,
            native_enum=False,
            length=20,
            validate_strings=True,
            values_callable=lambda members: [m.value for m in members],
        ),
        **kwargs
    )

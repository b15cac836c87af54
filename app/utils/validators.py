"""
输入校验工具
校验失败统一抛出 ValidationError，并带上出错字段名。
"""
import math
from datetime import date, datetime
from numbers import Number

from app.exceptions import ValidationError

# 整数列 (INTEGER) 的上限
MAX_INT = 2 ** 31 - 1


def is_number(value):
    """有限数值（排除 bool / NaN / inf）"""
    return isinstance(value, Number) and not isinstance(value, bool) and math.isfinite(value)


def positive_int(value, field):
    """验证正整数"""
    if is_number(value) and value == int(value) and 0 < value <= MAX_INT:
        return int(value)
    raise ValidationError(f"{field} 必须为 1 ~ {MAX_INT} 之间的整数", field=field)


def positive_id(value, field):
    """验证记录 ID（正整数），在任何查询之前调用"""
    if value is None or value == '':
        raise ValidationError(f"{field} 不能为空", field=field)
    return positive_int(value, field)


def positive_amount(value, field):
    """验证正数金额"""
    if not is_number(value) or value <= 0:
        raise ValidationError(f"{field} 必须大于0", field=field)
    return float(value)


def non_negative_amount(value, field):
    """验证非负金额，None 视为 0"""
    if value is None:
        return 0.0
    if not is_number(value) or value < 0:
        raise ValidationError(f"{field} 不能为负数", field=field)
    return float(value)


def require(value, field, message=None):
    """验证必填"""
    if value is None or value == '':
        raise ValidationError(message or f"{field} 不能为空", field=field)
    return value


def as_date(value, field):
    """接受 date / datetime / ISO 字符串"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"日期格式错误: {value}", field=field) from None

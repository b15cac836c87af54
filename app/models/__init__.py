# 按照依赖顺序导入
from .base import BaseModel
from .biz import Customer, Supplier, Product
from .stock import StockMovement, MovementDirection
from .trade import Order, OrderItem, OrderStatusEntry, OrderStatus, ORDER_TRANSITIONS
from .sys import SequenceCounter

# 采购管理
from .purchase import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus

from .guards import register_append_only_guard

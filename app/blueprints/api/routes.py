"""订单 / 采购 / 库存 JSON 接口"""
from flask import request, jsonify

from app.blueprints.api import api_bp
from app.exceptions import ValidationError
from app.services.customer_service import CustomerService, CUSTOMER_FIELDS
from app.services.inventory_service import StockLedger
from app.services.purchase_service import PurchaseService
from app.services.sales_service import SalesService


def _payload():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("请求体必须为 JSON 对象")
    return data


def _actor():
    """调用方身份由网关/上游写入请求头，核心服务不做认证"""
    return request.headers.get('X-Actor-Id')


@api_bp.route('/customers', methods=['POST'])
def create_customer():
    """登记客户"""
    data = _payload()
    unknown = set(data) - {'first_name', 'last_name'} - set(CUSTOMER_FIELDS)
    if unknown:
        raise ValidationError(f"不支持的客户字段: {sorted(unknown)}", field=sorted(unknown)[0])
    fields = {k: data[k] for k in CUSTOMER_FIELDS if k in data}
    customer = CustomerService.register_customer(data.get('first_name'), data.get('last_name'), **fields)
    return jsonify({'success': True, 'customer': customer.to_dict()}), 201


@api_bp.route('/orders', methods=['POST'])
def create_order():
    """创建销售订单"""
    data = _payload()
    header = {k: data[k] for k in ('shipping_address', 'payment_method', 'notes', 'required_date') if k in data}
    order = SalesService.create_order(
        customer_id=data.get('customer_id'),
        items_data=data.get('items'),
        actor_id=_actor(),
        discount_amount=data.get('discount_amount', 0.0),
        shipping_amount=data.get('shipping_amount', 0.0),
        **header
    )
    return jsonify({'success': True, 'order': order.to_dict(with_children=True)}), 201


@api_bp.route('/orders/<int:order_id>', methods=['GET'])
def order_detail(order_id):
    """订单详情（含明细与状态历史）"""
    order = SalesService.get_order(order_id)
    return jsonify({'success': True, 'order': order.to_dict(with_children=True)})


@api_bp.route('/orders/<int:order_id>/status', methods=['POST'])
def change_order_status(order_id):
    """订单状态流转"""
    data = _payload()
    entry = SalesService.transition_status(order_id, data.get('status'),
                                           notes=data.get('notes'), actor_id=_actor())
    return jsonify({'success': True, 'entry': entry.to_dict()})


@api_bp.route('/purchase-orders', methods=['POST'])
def create_purchase_order():
    """创建采购订单"""
    data = _payload()
    po = PurchaseService.create_purchase_order(
        supplier_id=data.get('supplier_id'),
        items_data=data.get('items'),
        actor_id=_actor(),
        expected_date=data.get('expected_date'),
        notes=data.get('notes'),
    )
    return jsonify({'success': True, 'purchase_order': po.to_dict(with_children=True)}), 201


@api_bp.route('/purchase-orders/<int:po_id>', methods=['GET'])
def purchase_order_detail(po_id):
    """采购订单详情"""
    po = PurchaseService.get_purchase_order(po_id)
    return jsonify({'success': True, 'purchase_order': po.to_dict(with_children=True)})


@api_bp.route('/purchase-orders/<int:po_id>/approve', methods=['POST'])
def approve_purchase_order(po_id):
    """审批通过"""
    po = PurchaseService.approve_purchase_order(po_id, actor_id=_actor())
    return jsonify({'success': True, 'purchase_order': po.to_dict()})


@api_bp.route('/purchase-orders/<int:po_id>/cancel', methods=['POST'])
def cancel_purchase_order(po_id):
    """取消采购单"""
    data = _payload()
    po = PurchaseService.cancel_purchase_order(po_id, actor_id=_actor(), notes=data.get('notes'))
    return jsonify({'success': True, 'purchase_order': po.to_dict()})


@api_bp.route('/purchase-orders/<int:po_id>/receive', methods=['POST'])
def receive_purchase_order(po_id):
    """批量收货"""
    data = _payload()
    po = PurchaseService.receive_items(po_id, data.get('items'),
                                       received_date=data.get('received_date'), actor_id=_actor())
    return jsonify({'success': True, 'purchase_order': po.to_dict(with_children=True)})


@api_bp.route('/purchase-order-items/<int:item_id>/receive', methods=['POST'])
def receive_line_item(item_id):
    """单行收货"""
    data = _payload()
    item, po = PurchaseService.receive_line_item(item_id, data.get('quantity'),
                                                 received_date=data.get('received_date'),
                                                 actor_id=_actor())
    return jsonify({'success': True, 'item': item.to_dict(), 'purchase_order': po.to_dict()})


@api_bp.route('/products/<int:product_id>/movements', methods=['POST'])
def apply_movement(product_id):
    """库存变动（手工调整默认关联类型为 adjustment）"""
    data = _payload()
    new_quantity = StockLedger.apply_movement(
        product_id,
        data.get('direction'),
        data.get('quantity'),
        data.get('reference_type') or 'adjustment',
        reference_id=data.get('reference_id'),
        actor_id=_actor(),
        notes=data.get('notes'),
        allow_negative=bool(data.get('allow_negative', False)) or None,
    )
    return jsonify({'success': True, 'product_id': product_id, 'stock_quantity': new_quantity}), 201


@api_bp.route('/products/<int:product_id>/reconciliation', methods=['GET'])
def reconciliation(product_id):
    """库存对账"""
    report = StockLedger.reconcile(product_id)
    return jsonify({'success': True, 'reconciliation': report._asdict()})

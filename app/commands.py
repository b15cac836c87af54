import sys
import click
import random
from flask.cli import with_appcontext
from app.extensions import db
from app.exceptions import NexusException
from app.models.biz import Customer, Supplier, Product
from app.models.stock import StockMovement, MovementDirection
from app.models.trade import Order, OrderStatus
from app.models.purchase import PurchaseOrder
from app.utils.fake_gen import fake


@click.command('status')
@with_appcontext
def status():
    """
    [验证指令] 查看核心业务表的数据统计。
    """
    click.echo(click.style('📊 NEXUS 数据库状态监控:', fg='cyan', bold=True))

    try:
        c_count = db.session.query(Customer).count()
        p_count = db.session.query(Product).count()
        o_count = db.session.query(Order).count()
        po_count = db.session.query(PurchaseOrder).count()
        m_count = db.session.query(StockMovement).count()

        click.echo(f" - 客户 (Customers): \t{c_count}")
        click.echo(f" - 产品 (Products): \t{p_count}")
        click.echo(f" - 订单 (Orders): \t{o_count}")
        click.echo(f" - 采购单 (POs): \t{po_count}")
        click.echo(f" - 库存流水 (Movements): \t{m_count}")

        if p_count > 0:
            click.echo(click.style('✔ 数据库连接正常，数据已存在。', fg='green'))
        else:
            click.echo(click.style('⚠ 数据库为空，请运行 flask forge 生成数据。', fg='yellow'))

    except Exception as e:
        click.echo(click.style(f'✘ 数据库读取失败: {str(e)}', fg='red'))
        click.echo("请检查是否执行了 'flask db upgrade'")
        sys.exit(1)


@click.command('reconcile')
@with_appcontext
def reconcile():
    """
    [对账指令] 核对每个商品的库存数量与库存流水合计。
    存在差异时以非零状态码退出。
    """
    from app.services.inventory_service import StockLedger

    drift = StockLedger.find_drift()
    if not drift:
        click.echo(click.style('✔ 库存与流水完全一致。', fg='green'))
        return
    click.echo(click.style(f'✘ 发现 {len(drift)} 个商品库存漂移:', fg='red', bold=True))
    for report in drift:
        click.echo(f" - 商品 #{report.product_id}: 库存 {report.stock_quantity}, "
                   f"流水合计 {report.ledger_quantity}, 差异 {report.drift:+d}")
    sys.exit(1)


@click.command('forge')
@click.option('--scale', default=1, help='数据规模倍数 (默认1倍)')
@with_appcontext
def forge(scale):
    """
    [造物主指令] 初始化并填充演示数据。
    使用 --scale 参数调整数据规模
    警告：这将清除数据库中的现有数据！
    """
    click.echo(click.style(f'⚡ 初始化 NEXUS 演示数据 (规模: {scale}x)...', fg='cyan', bold=True))

    # 1. 清除旧数据
    db.drop_all()
    db.create_all()

    click.echo('正在登记客户与供应商...')
    customers = init_customers(scale)
    suppliers = init_suppliers(scale)

    click.echo('正在注册商品并过账期初库存...')
    products = init_products(scale)

    click.echo('正在生成采购单并模拟收货...')
    init_purchases(suppliers, products, scale)

    click.echo('正在生成销售订单...')
    init_sales(customers, products, scale)

    click.echo(click.style('✔ NEXUS 演示数据构建完成！', fg='green', bold=True))


def init_customers(scale=1):
    from app.services.customer_service import CustomerService

    customers = []
    for _ in range(20 * scale):
        customers.append(CustomerService.register_customer(
            fake.first_name(), fake.last_name(),
            email=fake.email(), phone=fake.phone_number(), address=fake.address(),
        ))
    click.echo(f'  ✓ 已创建 {len(customers)} 个客户')
    return customers


def init_suppliers(scale=1):
    suppliers = []
    for i in range(5 * scale):
        s = Supplier(
            name=fake.supplier_name(),
            contact_person=fake.name(),
            phone=fake.phone_number(),
            email=f"supplier{i}@company.com",
            address=fake.address(),
        )
        db.session.add(s)
        suppliers.append(s)
    db.session.commit()
    click.echo(f'  ✓ 已创建 {len(suppliers)} 个供应商')
    return suppliers


def init_products(scale=1):
    from app.services.inventory_service import StockLedger

    products = []
    for i in range(50 * scale):
        cost = round(random.uniform(50, 2500), 2)
        p = Product(
            sku=fake.sku_code(i),
            name=fake.tech_product_name(),
            price=round(cost * random.uniform(1.2, 2.0), 2),
            cost=cost,
            stock_quantity=0,
            reorder_level=random.randint(5, 20),
        )
        db.session.add(p)
        products.append(p)
    db.session.commit()

    # 期初库存必须走台账，保证库存与流水一致
    for p in products:
        StockLedger.apply_movement(p.id, MovementDirection.IN, random.randint(20, 200),
                                   StockMovement.REF_OPENING, actor_id='forge',
                                   notes='系统初始化入库')
    click.echo(f'  ✓ 已创建 {len(products)} 个商品')
    return products


def init_purchases(suppliers, products, scale=1):
    from app.services.purchase_service import PurchaseService

    for _ in range(5 * scale):
        picked = random.sample(products, k=min(3, len(products)))
        po = PurchaseService.create_purchase_order(
            random.choice(suppliers).id,
            [{'product_id': p.id, 'quantity_ordered': random.randint(5, 50), 'unit_cost': p.cost}
             for p in picked],
            actor_id='forge',
        )
        PurchaseService.approve_purchase_order(po.id, actor_id='forge')
        # 部分采购单模拟分批到货
        for item in po.items:
            if random.random() < 0.7:
                PurchaseService.receive_line_item(item.id, item.quantity_ordered, actor_id='forge')
    click.echo(f'  ✓ 已创建 {5 * scale} 张采购单')


def init_sales(customers, products, scale=1):
    from app.services.sales_service import SalesService

    flow = [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]
    created = 0
    for _ in range(20 * scale):
        picked = random.sample(products, k=random.randint(1, min(3, len(products))))
        order = SalesService.create_order(
            random.choice(customers).id,
            [{'product_id': p.id, 'quantity': random.randint(1, 5), 'unit_price': p.price} for p in picked],
            actor_id='forge',
        )
        created += 1
        try:
            for next_status in flow[:random.randint(0, len(flow))]:
                SalesService.transition_status(order.id, next_status, actor_id='forge')
        except NexusException as e:
            click.echo(click.style(f'  ⚠ 订单 {order.order_number} 停留在当前状态: {e.message}', fg='yellow'))
    click.echo(f'  ✓ 已创建 {created} 个销售订单')

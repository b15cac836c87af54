from app.commands import forge, reconcile, status
from app.models import Customer, Order, Product


def test_status_on_empty_database(app):
    result = app.test_cli_runner().invoke(status)
    assert result.exit_code == 0
    assert 'flask forge' in result.output


def test_forge_seeds_a_reconciled_dataset(app, db):
    runner = app.test_cli_runner()
    result = runner.invoke(forge, ['--scale', '1'])
    assert result.exit_code == 0, result.output

    assert db.session.query(Customer).count() == 20
    assert db.session.query(Product).count() == 50
    assert db.session.query(Order).count() == 20

    result = runner.invoke(reconcile)
    assert result.exit_code == 0
    assert '一致' in result.output


def test_reconcile_fails_on_drift(app, db, make_product):
    product = make_product(stock=3)
    db.session.query(Product).filter_by(id=product.id).update({'stock_quantity': 1})
    db.session.commit()

    result = app.test_cli_runner().invoke(reconcile)
    assert result.exit_code == 1
    assert f'#{product.id}' in result.output

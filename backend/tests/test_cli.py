from smartstock.services import sales_service, stock_service


def test_init_db_is_idempotent(runner, db_session):
    result = runner.invoke(args=["system", "init-db"])
    assert result.exit_code == 0
    assert "PASS" in result.output


def test_stock_add_remove_show(runner, product):
    result = runner.invoke(args=["stock", "add", str(product.id), "50", "--reason", "Initial stock"])
    assert result.exit_code == 0
    assert "Current stock: 50" in result.output

    result = runner.invoke(args=["stock", "remove", str(product.id), "20"])
    assert result.exit_code == 0
    assert "Current stock: 30" in result.output

    result = runner.invoke(args=["stock", "show", str(product.id), "--history"])
    assert result.exit_code == 0
    assert "30 in stock" in result.output
    assert "Initial stock" in result.output


def test_stock_remove_insufficient(runner, product):
    stock_service.record_addition(product.id, 3)
    result = runner.invoke(args=["stock", "remove", str(product.id), "10"])
    assert result.exit_code == 1
    assert "FAIL insufficient stock: available 3, requested 10" in result.output
    assert stock_service.current_stock(product.id) == 3


def test_stock_unknown_product(runner, db_session):
    result = runner.invoke(args=["stock", "show", "999"])
    assert result.exit_code == 1
    assert "FAIL product not found" in result.output


def test_reports_summary_matches_api_numbers(runner, product):
    stock_service.record_addition(product.id, 100)
    sales_service.create_sale(items=[{"product_id": product.id, "quantity": 5}], status="PAID")

    result = runner.invoke(args=["reports", "summary"])
    assert result.exit_code == 0
    assert "Revenue:       125.00" in result.output
    assert "Profit:        75.00" in result.output
    assert "ROI %:         150.00" in result.output


def test_reports_stock_status_and_recommendations(runner, make_product):
    make_product("A", stock=15)
    make_product("B", stock=5)
    make_product("C")

    result = runner.invoke(args=["reports", "stock-status"])
    assert result.exit_code == 0
    assert "In stock:     1" in result.output
    assert "Out of stock: 1" in result.output

    result = runner.invoke(args=["reports", "recommendations"])
    assert result.exit_code == 0
    assert "[WARNING] Low Stock Alert" in result.output

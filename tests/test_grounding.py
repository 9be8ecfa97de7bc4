import pytest
from unittest.mock import AsyncMock
from querylens.core.grounding import RegexTableExtractor, SchemaGrounder


def test_extracts_from_and_join_targets():
    sql = "SELECT * FROM Orders o JOIN `order_items` oi ON oi.order_id = o.id"

    assert set(RegexTableExtractor().extract(sql)) == {"Orders", "order_items"}


def test_extraction_is_case_insensitive_and_unique():
    sql = """
        select o.id
          from orders o
          left join users u on u.id = o.user_id
          inner JOIN orders o2 on o2.id = o.id
    """

    assert RegexTableExtractor().extract(sql) == ["orders", "users"]


def test_extraction_strips_quotes_from_qualified_names():
    sql = 'SELECT 1 FROM `shop`.`orders` JOIN "users" ON 1 = 1'

    assert RegexTableExtractor().extract(sql) == ["shop.orders", "users"]


def test_subqueries_are_not_captured_as_tables():
    sql = "SELECT * FROM (SELECT id FROM orders) t"

    assert RegexTableExtractor().extract(sql) == ["orders"]


def test_resolve_matches_catalog_case_insensitively():
    resolved = SchemaGrounder.resolve(["Orders", "ORDER_ITEMS"], ["orders", "order_items"])

    assert resolved == ["orders", "order_items"]


def test_resolve_prefers_exact_name():
    assert SchemaGrounder.resolve(["Orders"], ["orders", "Orders"]) == ["Orders"]
    assert SchemaGrounder.resolve(["orders"], ["Orders", "orders"]) == ["orders"]


def test_resolve_skips_unknown_tables():
    assert SchemaGrounder.resolve(["orders", "ghost"], ["orders"]) == ["orders"]


def test_resolve_qualified_names_only_for_analyzed_schema():
    catalog = ["orders"]

    assert SchemaGrounder.resolve(["SHOP.orders"], catalog, "shop") == ["orders"]
    assert SchemaGrounder.resolve(["crm.orders"], catalog, "shop") == []


@pytest.mark.asyncio
async def test_ground_fetches_ddl_with_catalog_casing(mock_db_adapter):
    grounder = SchemaGrounder(mock_db_adapter)

    tables = await grounder.ground("SELECT * FROM Orders o JOIN `order_items` oi ON oi.order_id = o.id", "shop")

    assert [t.name for t in tables] == ["orders", "order_items"]
    assert tables[0].ddl.startswith("CREATE TABLE `orders`")


@pytest.mark.asyncio
async def test_ground_continues_after_missing_table(mock_db_adapter):
    grounder = SchemaGrounder(mock_db_adapter)

    tables = await grounder.ground("SELECT * FROM archive a JOIN users u ON u.id = a.user_id", "shop")

    assert [t.name for t in tables] == ["users"]


@pytest.mark.asyncio
async def test_ground_skips_table_when_ddl_fetch_fails(mock_db_adapter):
    original = mock_db_adapter.get_table_ddl

    async def flaky(schema, table):
        if table == "orders":
            raise RuntimeError("SHOW command denied")
        return await original(schema, table)

    mock_db_adapter.get_table_ddl = flaky
    tables = await SchemaGrounder(mock_db_adapter).ground("SELECT * FROM orders JOIN users", "shop")

    assert [t.name for t in tables] == ["users"]


@pytest.mark.asyncio
async def test_ground_without_tables_skips_catalog(mock_db_adapter):
    mock_db_adapter.list_tables = AsyncMock()

    assert await SchemaGrounder(mock_db_adapter).ground("SELECT 1", "shop") == []
    mock_db_adapter.list_tables.assert_not_called()


@pytest.mark.asyncio
async def test_custom_extractor_can_replace_regex(mock_db_adapter):
    class FixedExtractor:
        def extract(self, sql):
            return ["users"]

    tables = await SchemaGrounder(mock_db_adapter, FixedExtractor()).ground("anything", "shop")

    assert [t.name for t in tables] == ["users"]

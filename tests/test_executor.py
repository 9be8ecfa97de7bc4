import pytest
from unittest.mock import AsyncMock
from querylens.core.config import SandboxConfig
from querylens.core.executor import SandboxedQueryExecutor
from querylens.utils.formatting import render_markdown_table
from querylens.utils.security import SecurityGuard


@pytest.mark.asyncio
async def test_renders_markdown_table(executor):
    result = await executor.execute_query("shop", "SELECT id, name FROM users")

    assert result.splitlines()[0] == "| id | name |"
    assert "| 2 | Bob |" in result


@pytest.mark.asyncio
async def test_truncates_to_row_limit(executor, mock_db_adapter):
    mock_db_adapter.rows = [{"id": i} for i in range(10)]

    result = await executor.execute_query("shop", "SELECT id FROM users", row_limit=3)

    assert "| 2 |" in result
    assert "| 3 |" not in result
    assert "truncated to the first 3 rows" in result
    assert mock_db_adapter.executed[-1][2] == 4


@pytest.mark.asyncio
async def test_no_truncation_note_when_within_limit(executor, mock_db_adapter):
    mock_db_adapter.rows = [{"id": i} for i in range(3)]

    result = await executor.execute_query("shop", "SELECT id FROM users", row_limit=3)

    assert "truncated" not in result


@pytest.mark.asyncio
async def test_empty_result(executor, mock_db_adapter):
    mock_db_adapter.rows = []

    assert await executor.execute_query("shop", "SELECT 1 FROM users WHERE 0") == "Query returned no rows."


@pytest.mark.asyncio
async def test_database_error_becomes_text(executor, mock_db_adapter):
    mock_db_adapter.execute_query = AsyncMock(side_effect=Exception("(1146, \"Table 'shop.nope' doesn't exist\")"))

    result = await executor.execute_query("shop", "SELECT * FROM nope")

    assert result.startswith("Error executing query:")
    assert "doesn't exist" in result


@pytest.mark.asyncio
async def test_write_statements_are_rejected(executor, mock_db_adapter):
    result = await executor.execute_query("shop", "DELETE FROM users")

    assert result.startswith("Error:")
    assert mock_db_adapter.executed == []


@pytest.mark.asyncio
async def test_cache_serves_identical_queries(executor, mock_db_adapter):
    first = await executor.execute_query("shop", "SELECT * FROM users", use_cache=True)
    mock_db_adapter.rows = [{"id": 99}]
    second = await executor.execute_query("shop", "SELECT * FROM users", use_cache=True)
    other_schema = await executor.execute_query("crm", "SELECT * FROM users", use_cache=True)

    assert second == first
    assert "| 99 |" in other_schema
    assert len(mock_db_adapter.executed) == 2


@pytest.mark.asyncio
async def test_errors_are_not_cached(executor, mock_db_adapter):
    mock_db_adapter.execute_query = AsyncMock(side_effect=[Exception("lost connection"), [{"id": 1}]])

    first = await executor.execute_query("shop", "SELECT id FROM users", use_cache=True)
    second = await executor.execute_query("shop", "SELECT id FROM users", use_cache=True)

    assert first.startswith("Error")
    assert "| 1 |" in second


def test_markdown_table_escapes_cells():
    table = render_markdown_table([{"sql": "SELECT a|b\nFROM t", "n": None}])

    assert "SELECT a\\|b FROM t" in table
    assert "| NULL |" in table


@pytest.mark.parametrize("sql", [
    "SELECT * FROM users",
    "select digest, count_star from events_statements_summary_by_digest order by sum_timer_wait desc;",
    "SHOW INDEX FROM orders",
    "EXPLAIN SELECT * FROM orders",
    "WITH t AS (SELECT 1) SELECT * FROM t",
    "SELECT SUM_CREATED_TMP_TABLES, SUM_LOCK_TIME FROM events_statements_summary_by_digest",
    "SHOW CREATE TABLE orders",
    "show create view active_orders",
])
def test_guard_allows_reads(sql):
    assert SecurityGuard(SandboxConfig()).validate_sql(sql) == (True, None)


@pytest.mark.parametrize("sql", [
    "DROP TABLE users",
    "UPDATE users SET name = 'x'",
    "SELECT * FROM users; DELETE FROM users",
    "SELECT * FROM users INTO OUTFILE '/tmp/x'",
    "SELECT * FROM users FOR UPDATE",
    "SHOW CREATE TABLE orders; DROP TABLE orders",
    "SELECT 1 FROM dual WHERE 1 = 1 AND CREATE",
    "",
])
def test_guard_rejects_writes(sql):
    is_safe, error = SecurityGuard(SandboxConfig()).validate_sql(sql)

    assert not is_safe
    assert error


@pytest.mark.asyncio
async def test_show_create_table_reaches_database(executor, mock_db_adapter):
    mock_db_adapter.rows = [{"Table": "orders", "Create Table": "CREATE TABLE `orders` (`id` int)"}]

    result = await executor.execute_query("shop", "SHOW CREATE TABLE orders")

    assert not result.startswith("Error")
    assert "CREATE TABLE `orders`" in result
    assert mock_db_adapter.executed[-1][:2] == ("SHOW CREATE TABLE orders", "shop")


@pytest.mark.asyncio
async def test_cache_evicts_least_recently_used(mock_db_adapter):
    executor = SandboxedQueryExecutor(mock_db_adapter, SandboxConfig(cache_results=True, cache_size=2))

    await executor.execute_query("shop", "SELECT 1", use_cache=True)
    await executor.execute_query("shop", "SELECT 2", use_cache=True)
    await executor.execute_query("shop", "SELECT 1", use_cache=True)
    await executor.execute_query("shop", "SELECT 3", use_cache=True)
    assert len(mock_db_adapter.executed) == 3

    # SELECT 2 was the least recently used entry
    await executor.execute_query("shop", "SELECT 1", use_cache=True)
    assert len(mock_db_adapter.executed) == 3
    await executor.execute_query("shop", "SELECT 2", use_cache=True)
    assert len(mock_db_adapter.executed) == 4

import json
import pytest
from querylens.core.analyzer import QueryAnalyzer
from querylens.core.engine import ConversationEngine
from querylens.core.errors import FailureKind, NotFoundError, TransportError
from querylens.core.runs import RunService
from querylens.core.selector import CandidateSelector
from querylens.core.tools import PerformanceSchemaQueryTool


def _submission(group_name, queries):
    return json.dumps({
        "group_name": group_name,
        "group_description": f"{group_name} description",
        "queries": [
            {"digest": digest, "query_sample": sample, "schema": schema, "reason": "expensive"}
            for digest, sample, schema in queries
        ],
    })


@pytest.fixture
def service(mock_llm, mock_db_adapter, state_store, executor, analysis_config):
    engine = ConversationEngine(mock_llm)
    selector = CandidateSelector(engine, PerformanceSchemaQueryTool(executor))
    analyzer = QueryAnalyzer(engine, mock_db_adapter, state_store, executor, config=analysis_config)
    return RunService(selector, analyzer, mock_db_adapter, state_store, analysis_config)


def _script_selection(mock_llm, response_factory, *groups):
    calls = [(f"c{i}", "submit_selection", _submission(name, queries)) for i, (name, queries) in enumerate(groups)]
    mock_llm.chat.side_effect = [
        response_factory(None, calls),
        response_factory("Selected the most expensive statements."),
    ]


@pytest.mark.asyncio
async def test_new_run_persists_groups_and_queries(service, mock_llm, response_factory, mock_db_adapter, state_store):
    mock_db_adapter.query_texts[("d1", "shop")] = "SELECT * FROM orders WHERE status = 'new'"
    _script_selection(
        mock_llm,
        response_factory,
        ("Slowest", [("d1", "SELECT * FROM orders WHERE status = ?", "shop"), ("d2", "SELECT * FROM users", "shop")]),
        ("Temp tables", [("d3", "SELECT DISTINCT status FROM orders", "shop")]),
    )

    run_id = await service.new_run("look at orders", use_real_query=True)

    run = state_store.get_run(run_id)
    assert run.input == "look at orders"
    assert run.hostname == "mockdb:3306"
    assert run.output == "Selected the most expensive statements."
    assert run.use_real_query
    assert [g.name for g in state_store.get_groups(run_id)] == ["Slowest", "Temp tables"]

    queries = state_store.get_queries(run_id)
    assert [q.digest for q in queries] == ["d1", "d2", "d3"]
    assert queries[0].real_query == "SELECT * FROM orders WHERE status = 'new'"
    assert queries[1].real_query is None


@pytest.mark.asyncio
async def test_candidates_without_schema_are_skipped(service, mock_llm, response_factory, state_store):
    _script_selection(
        mock_llm,
        response_factory,
        ("Mixed", [("d1", "SELECT 1", "NULL"), ("d2", "SELECT 2", ""), ("d3", "SELECT * FROM users", "shop")]),
    )

    run_id = await service.new_run(None)

    assert [q.digest for q in state_store.get_queries(run_id)] == ["d3"]
    assert len(state_store.get_groups(run_id)) == 1


@pytest.mark.asyncio
async def test_failed_selection_writes_nothing(service, mock_llm, state_store):
    mock_llm.chat.side_effect = TransportError("provider unavailable")

    with pytest.raises(TransportError):
        await service.new_run(None)

    assert state_store.get_run(1) is None


@pytest.mark.asyncio
async def test_real_query_lookup_failure_is_tolerated(service, mock_llm, response_factory, mock_db_adapter, state_store):
    async def broken(digest, schema):
        raise RuntimeError("history tables disabled")

    mock_db_adapter.get_query_text = broken
    _script_selection(mock_llm, response_factory, ("Slowest", [("d1", "SELECT * FROM users", "shop")]))

    run_id = await service.new_run(None)

    assert state_store.get_queries(run_id)[0].real_query is None


@pytest.mark.asyncio
async def test_fetch_missing_queries(service, mock_llm, response_factory, mock_db_adapter, state_store):
    _script_selection(
        mock_llm,
        response_factory,
        ("Slowest", [("d1", "SELECT * FROM orders", "shop"), ("d2", "SELECT * FROM users", "shop")]),
    )
    run_id = await service.new_run(None)
    # statement from another schema with the same digest does not match
    mock_db_adapter.query_texts[("d1", "crm")] = "SELECT * FROM crm.orders"
    mock_db_adapter.query_texts[("d2", "shop")] = "SELECT * FROM users LIMIT 10"

    total, missing = await service.fetch_missing_queries(run_id)

    assert (total, missing) == (2, 1)
    queries = state_store.get_queries(run_id)
    assert queries[0].real_query is None
    assert queries[1].real_query == "SELECT * FROM users LIMIT 10"


@pytest.mark.asyncio
async def test_missing_run_and_query(service):
    with pytest.raises(NotFoundError):
        service.get_run(7)
    with pytest.raises(NotFoundError):
        await service.analyze(7)
    with pytest.raises(NotFoundError):
        await service.fetch_missing_queries(7)


@pytest.mark.asyncio
async def test_analyze_run_isolates_failures(service, mock_llm, response_factory, state_store):
    _script_selection(
        mock_llm,
        response_factory,
        ("Slowest", [("d1", "SELECT * FROM orders", "shop"), ("d2", "SELECT * FROM users", "shop")]),
    )
    run_id = await service.new_run(None)
    first, second = [q.id for q in state_store.get_queries(run_id)]

    async def chat(messages, tools=None, params=None):
        if "Query digest: d2" in messages[0]["content"]:
            raise TransportError("rate limited")
        return response_factory("Add an index")

    mock_llm.chat.side_effect = chat

    report = await service.analyze_run(run_id)

    assert list(report.outcomes) == [first]
    assert report.failures[second].kind == FailureKind.TRANSPORT
    assert "rate limited" in report.failures[second].message
    assert state_store.get_query(first).is_analyzed
    assert not state_store.get_query(second).is_analyzed


@pytest.mark.asyncio
async def test_analyze_run_skips_analyzed_queries(service, mock_llm, response_factory, state_store):
    _script_selection(mock_llm, response_factory, ("Slowest", [("d1", "SELECT * FROM orders", "shop")]))
    run_id = await service.new_run(None)
    mock_llm.chat.side_effect = None
    mock_llm.chat.return_value = response_factory("Add an index")

    await service.analyze_run(run_id)
    report = await service.analyze_run(run_id)

    assert report.outcomes == {}
    assert report.failures == {}


@pytest.mark.asyncio
async def test_continue_analysis_persists(service, mock_llm, response_factory, state_store):
    _script_selection(mock_llm, response_factory, ("Slowest", [("d1", "SELECT * FROM orders", "shop")]))
    run_id = await service.new_run(None)
    [query] = state_store.get_queries(run_id)
    mock_llm.chat.side_effect = [response_factory("Add an index"), response_factory("On column status")]

    await service.analyze(query.id)
    outcome = await service.continue_analysis(query.id, "Which column?")

    stored = state_store.get_query(query.id)
    assert stored.conversation == outcome.conversation
    assert stored.conversation.last_text == "On column status"
    assert len(stored.conversation) == 4


@pytest.mark.asyncio
async def test_continue_requires_previous_analysis(service, mock_llm, response_factory, state_store):
    _script_selection(mock_llm, response_factory, ("Slowest", [("d1", "SELECT * FROM orders", "shop")]))
    run_id = await service.new_run(None)
    [query] = state_store.get_queries(run_id)

    with pytest.raises(NotFoundError):
        await service.continue_analysis(query.id, "Which column?")


def test_run_reader_needs_only_the_state_store(tmp_path):
    from querylens.core.config import Settings, StateConfig
    from querylens.core.conversation import Conversation
    from querylens.core.services import open_run_reader
    from querylens.state.sqlite import SQLiteStateStore

    path = str(tmp_path / "state.sqlite")
    store = SQLiteStateStore(path)
    run_id = store.create_run(
        input="billing",
        hostname="db1:3306",
        output="One group",
        use_real_query=False,
        use_database_access=False,
        conversation=Conversation.from_prompt("select"),
        conversation_markdown="",
    )
    group_id = store.create_group(run_id, "Slowest", "latency")
    store.create_query(run_id, group_id, "d1", "SELECT * FROM orders", None, "shop", "slow")
    store.close()

    with open_run_reader(Settings(state=StateConfig(path=path), analyzed_database=None)) as reader:
        assert reader.get_run(run_id).output == "One group"
        assert [g.name for g in reader.get_groups(run_id)] == ["Slowest"]
        assert [q.digest for q in reader.get_queries(run_id)] == ["d1"]
        with pytest.raises(NotFoundError):
            reader.get_query(999)

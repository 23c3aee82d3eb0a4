import functools

import pytest

from tenant_provisioning.database.connection import create_connection_handle
from tenant_provisioning.database.exceptions import ConcurrencyError, SessionRequestLimitError
from tenant_provisioning.database.session import collection_for_id

from conftest import FakeMotorClient, FakeServer


@pytest.fixture
def seeded_server(fake_server):
    fake_server.collection("tenant-test", "widgets")["widgets/1"] = {
        "_id": "widgets/1",
        "_etag": 3,
        "id": "widgets/1",
        "colour": "red",
        "tags": ["a"],
    }
    return fake_server


async def _open(config, factory):
    handle = create_connection_handle(config, client_factory=factory)
    await handle.initialize()
    return handle


def test_collection_for_id():
    assert collection_for_id("tenants/abc") == "tenants"
    assert collection_for_id("tenant-configs/x/y") == "tenant-configs"
    with pytest.raises(ValueError):
        collection_for_id("no-prefix")


@pytest.mark.asyncio
async def test_load_strips_bookkeeping_and_uses_identity_map(database_config, client_factory, seeded_server):
    handle = await _open(database_config, client_factory)

    async with handle.open_session() as session:
        first = await session.load("widgets/1")
        second = await session.load("widgets/1")

        assert first == {"id": "widgets/1", "colour": "red", "tags": ["a"]}
        assert first is second
        assert session.number_of_requests == 1
        assert await session.load("widgets/missing") is None

    await handle.dispose()


@pytest.mark.asyncio
async def test_modifications_of_loaded_documents_are_tracked(database_config, client_factory, seeded_server):
    handle = await _open(database_config, client_factory)

    async with handle.open_session() as session:
        widget = await session.load("widgets/1")
        widget["tags"].append("b")
        assert session.has_changes()
        await session.save_changes()
        assert not session.has_changes()

    stored = seeded_server.databases["tenant-test"]["widgets"]["widgets/1"]
    assert stored["tags"] == ["a", "b"]
    assert stored["_etag"] == 4
    await handle.dispose()


@pytest.mark.asyncio
async def test_save_without_changes_makes_no_request(database_config, client_factory, seeded_server):
    handle = await _open(database_config, client_factory)

    async with handle.open_session() as session:
        await session.load("widgets/1")
        await session.save_changes()
        assert session.number_of_requests == 1

    await handle.dispose()


@pytest.mark.asyncio
async def test_stale_replacement_raises_concurrency_error(database_config, client_factory, seeded_server):
    handle = await _open(database_config, client_factory)

    first = handle.open_session()
    second = handle.open_session()
    (await first.load("widgets/1"))["colour"] = "green"
    (await second.load("widgets/1"))["colour"] = "blue"

    await first.save_changes()
    with pytest.raises(ConcurrencyError) as exc_info:
        await second.save_changes()

    assert exc_info.value.document_id == "widgets/1"
    assert seeded_server.databases["tenant-test"]["widgets"]["widgets/1"]["colour"] == "green"
    await handle.dispose()


@pytest.mark.asyncio
async def test_storing_existing_id_as_new_raises_concurrency_error(database_config, client_factory, seeded_server):
    handle = await _open(database_config, client_factory)

    async with handle.open_session() as session:
        session.store({"id": "widgets/1", "colour": "black"})
        with pytest.raises(ConcurrencyError):
            await session.save_changes()

    await handle.dispose()


@pytest.mark.asyncio
async def test_failed_commit_keeps_only_unwritten_changes_pending(database_config, client_factory, seeded_server):
    handle = await _open(database_config, client_factory)
    widgets = seeded_server.databases["tenant-test"]["widgets"]

    async with handle.open_session() as session:
        session.store({"id": "widgets/2", "colour": "white"})
        session.store({"id": "widgets/1", "colour": "black"})
        with pytest.raises(ConcurrencyError):
            await session.save_changes()

        assert widgets["widgets/2"]["_etag"] == 1
        assert session.has_changes()

        del widgets["widgets/1"]
        await session.save_changes()
        assert not session.has_changes()

    assert widgets["widgets/1"]["colour"] == "black"
    assert widgets["widgets/2"]["colour"] == "white"
    await handle.dispose()


@pytest.mark.asyncio
async def test_last_write_wins_without_optimistic_concurrency(database_config, client_factory, seeded_server):
    config = database_config.model_copy(update={"enable_optimistic_concurrency": False})
    handle = await _open(config, client_factory)

    async with handle.open_session() as session:
        session.store({"id": "widgets/1", "colour": "black"})
        await session.save_changes()

    assert seeded_server.databases["tenant-test"]["widgets"]["widgets/1"]["colour"] == "black"
    await handle.dispose()


@pytest.mark.asyncio
async def test_delete_and_query(database_config, client_factory, seeded_server):
    handle = await _open(database_config, client_factory)

    async with handle.open_session() as session:
        session.store({"id": "widgets/2", "colour": "red"})
        session.store({"id": "widgets/3", "colour": "blue"})
        await session.save_changes()

    async with handle.open_session() as session:
        red = await session.query("widgets", colour="red")
        assert sorted(doc["id"] for doc in red) == ["widgets/1", "widgets/2"]
        session.delete("widgets/2")
        await session.save_changes()
        assert await session.load("widgets/2") is None

    assert "widgets/2" not in seeded_server.databases["tenant-test"]["widgets"]
    await handle.dispose()


@pytest.mark.asyncio
async def test_store_then_delete_before_commit_writes_nothing(database_config, client_factory, fake_server):
    handle = await _open(database_config, client_factory)

    async with handle.open_session() as session:
        session.store({"id": "widgets/9", "colour": "red"})
        session.delete("widgets/9")
        assert not session.has_changes()

    assert fake_server.databases.get("tenant-test", {}).get("widgets", {}) == {}
    await handle.dispose()


@pytest.mark.asyncio
async def test_request_limit_is_enforced(database_config, client_factory, seeded_server):
    config = database_config.model_copy(update={"max_requests_per_session": 2})
    handle = await _open(config, client_factory)

    async with handle.open_session() as session:
        await session.load("widgets/1")
        await session.load("widgets/2")
        with pytest.raises(SessionRequestLimitError) as exc_info:
            await session.load("widgets/3")

    assert exc_info.value.limit == 2
    await handle.dispose()


@pytest.mark.asyncio
async def test_multiple_writes_use_a_transaction_when_supported(database_config):
    server = FakeServer(replica_set=True)
    handle = await _open(database_config, functools.partial(FakeMotorClient, server))

    async with handle.open_session() as session:
        session.store({"id": "widgets/1", "colour": "red"})
        await session.save_changes()
        assert server.transactions == 0

        session.store({"id": "widgets/2", "colour": "red"})
        session.store({"id": "widgets/3", "colour": "red"})
        await session.save_changes()
        assert server.transactions == 1

    await handle.dispose()


@pytest.mark.asyncio
async def test_store_requires_an_id(database_config, client_factory):
    handle = await _open(database_config, client_factory)

    async with handle.open_session() as session:
        with pytest.raises(ValueError):
            session.store({"colour": "red"})

    await handle.dispose()

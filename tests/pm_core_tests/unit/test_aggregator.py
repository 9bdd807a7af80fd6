"""
Unit tests for PMAggregator
"""

import logging
from datetime import datetime

import pytest
from unittest.mock import AsyncMock

from pm_core.cache import CacheOperation
from pm_core.errors import (
    InvalidTaskIdError, NoProvidersConnectedError, NotAuthenticatedError,
    NotFoundError, ProviderCallError, UnknownProviderError, UnsupportedCapabilityError,
)
from pm_core.handlers import PMAggregator
from pm_core.providers import ProviderRegistry
from pm_core.providers.models import (
    CreateTaskInput, CustomFieldInput, Project, ProviderType, TaskStatus, UpdateTaskInput,
)
from tests.pm_core_tests.fakes import FakeAsanaProvider, FakeProvider, enum_field, make_task, setting


class FakeLinearProvider(FakeProvider):
    name = ProviderType.LINEAR
    display_name = "Linear"


def ids(tasks):
    return [t.id for t in tasks]


@pytest.fixture
def asana():
    return FakeAsanaProvider(
        tasks=[
            make_task(ProviderType.ASANA, "1", title="Fix login", due_date=datetime(2025, 3, 5)),
            make_task(ProviderType.ASANA, "2", title="Write docs"),
        ],
        overdue=[make_task(ProviderType.ASANA, "9", due_date=datetime(2025, 1, 1))],
    )


@pytest.fixture
def notion():
    return FakeProvider(
        tasks=[
            make_task(ProviderType.NOTION, "2", title="Plan sprint", due_date=datetime(2025, 3, 1)),
            make_task(ProviderType.NOTION, "3", title="Login page copy", due_date=datetime(2025, 3, 9)),
        ],
    )


def build(task_cache, resolver, *providers):
    return PMAggregator(ProviderRegistry(providers), task_cache, resolver)


@pytest.fixture
def aggregator(task_cache, resolver, asana, notion):
    return build(task_cache, resolver, asana, notion)


class TestAggregateTasks:
    """Tests for aggregate_tasks."""

    @pytest.mark.asyncio
    async def test_merges_and_sorts_by_due_date(self, aggregator):
        tasks = await aggregator.aggregate_tasks("assigned")
        assert ids(tasks) == ["NOTION-2", "ASANA-1", "NOTION-3", "ASANA-2"]

    @pytest.mark.asyncio
    async def test_dedup_keeps_first_provider(self, task_cache, resolver, asana):
        """Test a task ID returned twice appears once, from the first provider."""
        duplicate = make_task(ProviderType.ASANA, "1", title="Stale copy")
        linear = FakeLinearProvider(tasks=[duplicate, make_task(ProviderType.LINEAR, "L1")])
        aggregator = build(task_cache, resolver, asana, linear)

        tasks = await aggregator.aggregate_tasks("assigned")

        assert ids(tasks).count("ASANA-1") == 1
        assert next(t for t in tasks if t.id == "ASANA-1").title == "Fix login"
        assert len(tasks) == 3

    @pytest.mark.asyncio
    async def test_failure_isolated(self, task_cache, resolver, asana, notion):
        """Test a failing provider contributes nothing and no error escapes."""
        notion.fail_reads = RuntimeError("timeout")
        aggregator = build(task_cache, resolver, asana, notion)

        tasks = await aggregator.aggregate_tasks("assigned")

        assert ids(tasks) == ["ASANA-1", "ASANA-2"]
        assert notion.calls["assigned"] == 1

    @pytest.mark.asyncio
    async def test_failure_logged_as_warning(self, task_cache, resolver, asana, notion, caplog):
        notion.fail_reads = RuntimeError("timeout")
        aggregator = build(task_cache, resolver, asana, notion)

        with caplog.at_level(logging.WARNING, logger="pm_core"):
            await aggregator.aggregate_tasks("assigned")

        assert any("notion" in r.getMessage() and r.levelno == logging.WARNING for r in caplog.records)
        assert any("timeout" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_all_fail_returns_empty(self, task_cache, resolver, asana, notion):
        asana.fail_reads = RuntimeError("down")
        notion.fail_reads = RuntimeError("down")
        aggregator = build(task_cache, resolver, asana, notion)
        assert await aggregator.aggregate_tasks("assigned") == []

    @pytest.mark.asyncio
    async def test_explicit_source_failure_propagates(self, task_cache, resolver, asana, notion):
        notion.fail_reads = RuntimeError("timeout")
        aggregator = build(task_cache, resolver, asana, notion)

        with pytest.raises(ProviderCallError) as exc_info:
            await aggregator.aggregate_tasks("assigned", source="notion")

        assert exc_info.value.provider == "notion"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_explicit_source(self, aggregator):
        tasks = await aggregator.aggregate_tasks("assigned", source=ProviderType.NOTION)
        assert ids(tasks) == ["NOTION-2", "NOTION-3"]

    @pytest.mark.asyncio
    async def test_unknown_source(self, aggregator):
        with pytest.raises(UnknownProviderError):
            await aggregator.aggregate_tasks("assigned", source="jira")

    @pytest.mark.asyncio
    async def test_unauthenticated_source(self, aggregator, notion):
        notion.authenticated = False
        with pytest.raises(NotAuthenticatedError, match="pm connect notion"):
            await aggregator.aggregate_tasks("assigned", source="notion")

    @pytest.mark.asyncio
    async def test_unauthenticated_skipped(self, aggregator, notion):
        notion.authenticated = False
        tasks = await aggregator.aggregate_tasks("assigned")
        assert ids(tasks) == ["ASANA-1", "ASANA-2"]
        assert "assigned" not in notion.calls

    @pytest.mark.asyncio
    async def test_auth_check_error_counts_as_disconnected(self, aggregator, notion):
        notion.is_authenticated = AsyncMock(side_effect=RuntimeError("keychain locked"))
        tasks = await aggregator.aggregate_tasks("assigned")
        assert ids(tasks) == ["ASANA-1", "ASANA-2"]

    @pytest.mark.asyncio
    async def test_no_providers_connected(self, aggregator, asana, notion):
        asana.authenticated = False
        notion.authenticated = False
        with pytest.raises(NoProvidersConnectedError):
            await aggregator.aggregate_tasks("assigned")

    @pytest.mark.asyncio
    async def test_limit(self, aggregator, asana):
        tasks = await aggregator.aggregate_tasks("assigned", limit=2)
        assert ids(tasks) == ["NOTION-2", "ASANA-1"]
        assert asana.last_options.limit == 2

    @pytest.mark.asyncio
    async def test_zero_limit_returns_everything(self, aggregator, asana):
        tasks = await aggregator.aggregate_tasks("assigned", limit=0)
        assert len(tasks) == 4
        assert asana.last_options.limit is None

    @pytest.mark.asyncio
    async def test_overdue(self, aggregator):
        assert ids(await aggregator.aggregate_tasks(CacheOperation.OVERDUE)) == ["ASANA-9"]

    @pytest.mark.asyncio
    async def test_search_operation_rejected(self, aggregator):
        with pytest.raises(ValueError):
            await aggregator.aggregate_tasks("search")


class TestCaching:
    """Tests for cache read-through and invalidation."""

    @pytest.mark.asyncio
    async def test_second_read_hits_cache(self, aggregator, asana):
        first = await aggregator.aggregate_tasks("assigned")
        second = await aggregator.aggregate_tasks("assigned")

        assert first == second
        assert asana.calls["assigned"] == 1

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self, aggregator, asana):
        await aggregator.aggregate_tasks("assigned")
        await aggregator.aggregate_tasks("assigned", refresh=True)

        assert asana.calls["assigned"] == 2
        assert asana.last_options.refresh is True

    @pytest.mark.asyncio
    async def test_expired_entry_refetched(self, aggregator, asana, clock):
        await aggregator.aggregate_tasks("assigned")
        clock.advance(301)
        await aggregator.aggregate_tasks("assigned")
        assert asana.calls["assigned"] == 2

    @pytest.mark.asyncio
    async def test_write_invalidates_provider(self, aggregator, asana, notion):
        await aggregator.aggregate_tasks("assigned")
        await aggregator.complete_task("ASANA-1")
        await aggregator.aggregate_tasks("assigned")

        assert asana.calls["assigned"] == 2
        assert notion.calls["assigned"] == 1

    @pytest.mark.asyncio
    async def test_comment_keeps_cache(self, aggregator, asana):
        await aggregator.aggregate_tasks("assigned")
        await aggregator.add_comment("ASANA-1", "looks good")
        await aggregator.aggregate_tasks("assigned")
        assert asana.calls["assigned"] == 1

    @pytest.mark.asyncio
    async def test_get_task_uses_detail_cache(self, aggregator, asana):
        first = await aggregator.get_task("asana-1")
        second = await aggregator.get_task("ASANA-1")

        assert first.id == second.id == "ASANA-1"
        assert asana.calls["get_task"] == 1

    @pytest.mark.asyncio
    async def test_get_task_missing(self, aggregator):
        assert await aggregator.get_task("ASANA-404") is None


class TestSearchTasks:

    @pytest.mark.asyncio
    async def test_search_keeps_provider_order(self, aggregator):
        tasks = await aggregator.search_tasks("login")
        assert ids(tasks) == ["ASANA-1", "NOTION-3"]

    @pytest.mark.asyncio
    async def test_search_failure_isolated(self, task_cache, resolver, asana, notion):
        """Test a failing provider adds nothing to search results."""
        notion.fail_reads = RuntimeError("timeout")
        aggregator = build(task_cache, resolver, asana, notion)

        tasks = await aggregator.search_tasks("login")

        assert ids(tasks) == ["ASANA-1"]

    @pytest.mark.asyncio
    async def test_search_dedup_keeps_first_provider(self, task_cache, resolver, asana):
        duplicate = make_task(ProviderType.ASANA, "1", title="Fix login (mirror)")
        linear = FakeLinearProvider(
            tasks=[duplicate, make_task(ProviderType.LINEAR, "L1", title="login audit")]
        )
        aggregator = build(task_cache, resolver, asana, linear)

        tasks = await aggregator.search_tasks("login")

        assert ids(tasks) == ["ASANA-1", "LINEAR-L1"]
        assert tasks[0].title == "Fix login"

    @pytest.mark.asyncio
    async def test_search_explicit_source_failure_propagates(self, task_cache, resolver, asana, notion):
        notion.fail_reads = RuntimeError("timeout")
        aggregator = build(task_cache, resolver, asana, notion)

        with pytest.raises(ProviderCallError) as exc_info:
            await aggregator.search_tasks("login", source="notion")

        assert exc_info.value.provider == "notion"

    @pytest.mark.asyncio
    async def test_search_zero_limit(self, aggregator):
        assert ids(await aggregator.search_tasks("login", limit=0)) == ["ASANA-1", "NOTION-3"]

    @pytest.mark.asyncio
    async def test_search_cached_per_query(self, aggregator, asana, task_cache):
        await aggregator.search_tasks("login")
        await aggregator.search_tasks("login")
        await aggregator.search_tasks("docs")

        assert asana.calls["search"] == 2
        assert task_cache.get_task_list("search", "asana", "login") is not None

    @pytest.mark.asyncio
    async def test_search_without_providers(self, aggregator, asana, notion):
        asana.authenticated = False
        notion.authenticated = False
        assert await aggregator.search_tasks("login") == []

    @pytest.mark.asyncio
    async def test_search_explicit_unauthenticated(self, aggregator, notion):
        notion.authenticated = False
        with pytest.raises(NotAuthenticatedError):
            await aggregator.search_tasks("login", source="notion")


class TestWrites:
    """Tests for routed writes."""

    @pytest.mark.asyncio
    async def test_invalid_id(self, aggregator):
        with pytest.raises(InvalidTaskIdError):
            await aggregator.complete_task("bad-id")

    @pytest.mark.asyncio
    async def test_unregistered_provider(self, aggregator):
        with pytest.raises(UnknownProviderError):
            await aggregator.complete_task("TRELLO-1")

    @pytest.mark.asyncio
    async def test_unauthenticated_provider(self, aggregator, notion):
        notion.authenticated = False
        with pytest.raises(NotAuthenticatedError):
            await aggregator.delete_task("NOTION-2")

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self, aggregator):
        with pytest.raises(ProviderCallError, match="notion API failure while trying to complete task 77"):
            await aggregator.complete_task("NOTION-77")

    @pytest.mark.asyncio
    async def test_complete(self, aggregator):
        task = await aggregator.complete_task("NOTION-2")
        assert task.status == TaskStatus.DONE

    @pytest.mark.asyncio
    async def test_comment_requires_capability(self, aggregator):
        with pytest.raises(UnsupportedCapabilityError, match="notion does not support comments"):
            await aggregator.add_comment("NOTION-2", "hi")

    @pytest.mark.asyncio
    async def test_thread(self, aggregator):
        await aggregator.add_comment("ASANA-1", "first")
        thread = await aggregator.get_task_thread("ASANA-1")
        assert [entry.body for entry in thread] == ["first"]

        with pytest.raises(UnsupportedCapabilityError):
            await aggregator.get_task_thread("NOTION-2")

    @pytest.mark.asyncio
    async def test_create_without_metadata_passes_names(self, aggregator, notion):
        task = await aggregator.create_task("notion", CreateTaskInput(title="New", project_name="Inbox"))

        assert task.source == ProviderType.NOTION
        assert notion.created[0].project_name == "Inbox"
        assert task.custom_field_results is None

    @pytest.mark.asyncio
    async def test_create_fields_without_metadata(self, aggregator):
        with pytest.raises(UnsupportedCapabilityError):
            await aggregator.create_task(
                "notion", CreateTaskInput(title="New", difficulty="S")
            )

    @pytest.mark.asyncio
    async def test_create_with_resolution(self, aggregator, asana):
        asana.projects = {"ws1": [Project("p1", "Backlog")]}
        asana.field_settings = {"p1": [setting(enum_field("f1", "Difficulty", ["XS", "S", "M"]))]}

        task = await aggregator.create_task(
            ProviderType.ASANA,
            CreateTaskInput(title="New", project_name="Backlog", difficulty="S"),
        )

        sent = asana.created[0]
        assert sent.project_id == "p1"
        assert sent.custom_field_payload == {"f1": "f1-S"}
        assert task.custom_field_results[0].option_names == ["S"]

    @pytest.mark.asyncio
    async def test_create_resolution_error_propagates(self, aggregator, asana):
        asana.projects = {"ws1": [Project("p1", "Backlog")]}
        asana.field_settings = {"p1": [setting(enum_field("f1", "Difficulty", ["XS", "S", "M"]))]}

        with pytest.raises(NotFoundError) as exc_info:
            await aggregator.create_task(
                "asana", CreateTaskInput(title="New", project_name="Backlog", difficulty="L")
            )

        assert "XS (f1-XS)" in exc_info.value.message
        assert asana.created == []

    @pytest.mark.asyncio
    async def test_update_with_fields(self, aggregator, asana):
        asana.projects = {"ws1": [Project("p1", "Backlog")]}
        asana.field_settings = {"p1": [setting(enum_field("f2", "Other", ["Bugs"], "multi_enum"))]}

        task = await aggregator.update_task(
            "ASANA-1",
            UpdateTaskInput(title="Renamed", project_name="Backlog",
                            custom_fields=[CustomFieldInput("Other", ["Bugs"])]),
        )

        assert task.title == "Renamed"
        assert asana.updated[0].custom_field_payload == {"f2": ["f2-Bugs"]}
        assert task.custom_field_results[0].field_name == "Other"

    @pytest.mark.asyncio
    async def test_update_fields_without_metadata(self, aggregator):
        with pytest.raises(UnsupportedCapabilityError):
            await aggregator.update_task(
                "NOTION-2", UpdateTaskInput(custom_fields=[CustomFieldInput("Other", ["Bugs"])])
            )


class TestBatch:
    """Tests for complete_tasks/delete_tasks."""

    @pytest.mark.asyncio
    async def test_complete_mixed_batch(self, aggregator):
        """Test one bad ID does not abort the batch."""
        results = await aggregator.complete_tasks(["ASANA-1", "bad-id", "NOTION-2"])

        assert len(results) == 3
        assert [r.id for r in results] == ["ASANA-1", "bad-id", "NOTION-2"]
        assert results[0].task.status == TaskStatus.DONE
        assert results[1].task is None
        assert results[1].error == "Invalid task ID format: bad-id"
        assert results[2].ok

    @pytest.mark.asyncio
    async def test_delete_batch(self, aggregator, notion):
        results = await aggregator.delete_tasks(["NOTION-2", "NOTION-2"])

        assert results[0].ok
        assert not results[1].ok
        assert "not found" in results[1].error
        assert [t.id for t in notion.tasks] == ["NOTION-3"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, aggregator):
        assert await aggregator.complete_tasks([]) == []


class TestProvidersInfo:

    @pytest.mark.asyncio
    async def test_info(self, aggregator, notion):
        notion.authenticated = False
        info = await aggregator.get_providers_info()

        assert [(i.name, i.display_name, i.connected) for i in info] == [
            (ProviderType.ASANA, "Asana", True),
            (ProviderType.NOTION, "Notion", False),
        ]

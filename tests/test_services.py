"""Tests for the session manager, task scheduler and chat service."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from moodmix.config import Settings
from moodmix.exceptions import TurnInProgressError
from moodmix.models.chat import Message
from moodmix.services.chat import ChatService
from moodmix.services.scheduler import TaskScheduler

from conftest import ScriptedModel, collect, text_step


@pytest.fixture
def chat_service(library, store, registry):
    """Chat service driven by a scripted model."""
    return ChatService(
        settings=Settings(system_prompt="You are a music assistant.", session_timeout_minutes=5),
        model=ScriptedModel([text_step("Hi there!")]),
        store=store,
        registry=registry,
        library=library,
    )


class TestSessionManager:
    """Tests for InMemorySessionManager via the chat service."""

    @pytest.mark.asyncio
    async def test_creates_session_with_generated_id(self, chat_service):
        """Test that sessions without an id get a fresh one."""
        first = await chat_service.get_or_create_agent()
        second = await chat_service.get_or_create_agent()

        assert first.session.session_id != second.session.session_id
        assert chat_service.sessions.get_session_count() == 2

    @pytest.mark.asyncio
    async def test_returns_existing_agent(self, chat_service):
        """Test that the same id maps to the same agent."""
        agent = await chat_service.get_or_create_agent("s1")

        assert await chat_service.get_or_create_agent("s1") is agent
        assert await chat_service.get_agent("s1") is agent

    @pytest.mark.asyncio
    async def test_unknown_session(self, chat_service):
        """Test that unknown ids are not created by get_agent."""
        assert await chat_service.get_agent("nope") is None

    @pytest.mark.asyncio
    async def test_expired_session_restored_from_store(self, chat_service):
        """Test that an idle session dropped from memory comes back with its history."""
        agent = await chat_service.get_or_create_agent("s1")
        await collect(agent.stream_user_message("Hello"))
        agent.session.last_activity = datetime.now(UTC) - timedelta(minutes=10)

        restored = await chat_service.get_agent("s1")

        assert restored is not agent
        assert [m.id for m in restored.session.messages] == [m.id for m in agent.session.messages]

    @pytest.mark.asyncio
    async def test_delete_session(self, chat_service, store):
        """Test that deleting removes the session and its stored history."""
        agent = await chat_service.get_or_create_agent("s1")
        await collect(agent.stream_user_message("Hello"))

        assert await chat_service.delete_session("s1") is True
        assert await store.load("s1") is None
        assert await chat_service.get_agent("s1") is None
        assert await chat_service.delete_session("s1") is False

    @pytest.mark.asyncio
    async def test_delete_refused_during_turn(self, chat_service, store):
        """Test that a session cannot be deleted while a turn is writing to it."""
        agent = await chat_service.get_or_create_agent("s1")
        events = agent.stream_user_message("Hello")
        await anext(events)

        with pytest.raises(TurnInProgressError):
            await chat_service.delete_session("s1")

        await collect(events)
        assert await chat_service.delete_session("s1") is True
        assert await store.load("s1") is None
        assert await chat_service.get_agent("s1") is None

    @pytest.mark.asyncio
    async def test_deleted_agent_stops_persisting(self, chat_service, store):
        """Test that an agent still referenced after deletion cannot bring the history back."""
        agent = await chat_service.get_or_create_agent("s1")
        await chat_service.delete_session("s1")

        await agent.run_scheduled_task("Late reminder")

        assert await store.load("s1") is None
        assert await chat_service.get_agent("s1") is None


class TestTaskScheduler:
    """Tests for TaskScheduler."""

    @pytest.mark.asyncio
    async def test_runs_after_delay(self):
        """Test that a task runs once with its session and description."""
        runner = AsyncMock()
        scheduler = TaskScheduler(runner)

        task = scheduler.schedule("s1", "Suggest a focus playlist", 0.01)
        assert scheduler.pending_tasks("s1") == [task]
        await asyncio.sleep(0.05)

        runner.assert_awaited_once_with("s1", "Suggest a focus playlist")
        assert scheduler.pending_tasks() == []

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Test that a cancelled task never runs."""
        runner = AsyncMock()
        scheduler = TaskScheduler(runner)

        task = scheduler.schedule("s1", "Later", 10)

        assert scheduler.cancel(task.task_id) is True
        assert scheduler.cancel(task.task_id) is False
        await asyncio.sleep(0)
        runner.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_runner_is_contained(self):
        """Test that a failing task does not stop the others."""
        runner = AsyncMock(side_effect=[RuntimeError("boom"), None])
        scheduler = TaskScheduler(runner)

        scheduler.schedule("s1", "first", 0)
        scheduler.schedule("s2", "second", 0.01)
        await asyncio.sleep(0.05)

        assert runner.await_count == 2

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending(self):
        """Test that shutdown cancels everything still waiting."""
        runner = AsyncMock()
        scheduler = TaskScheduler(runner)
        scheduler.schedule("s1", "a", 10)
        scheduler.schedule("s2", "b", 10)

        await scheduler.shutdown()

        assert scheduler.pending_tasks() == []
        runner.assert_not_awaited()


class TestScheduledTaskDelivery:
    """Tests for scheduled tasks reaching their session."""

    @pytest.mark.asyncio
    async def test_task_injected_into_session(self, chat_service):
        """Test that a scheduled task appears as a user message in the session."""
        agent = await chat_service.get_or_create_agent("s1")

        chat_service.schedule_task("s1", "Share a new running mix", 0)
        await asyncio.sleep(0.05)

        assert agent.session.messages[-1].text == "Running scheduled task: Share a new running mix"

    @pytest.mark.asyncio
    async def test_task_for_deleted_session_is_dropped(self, chat_service, store):
        """Test that tasks for sessions that no longer exist do nothing."""
        await chat_service.run_scheduled_task("gone", "Hello?")

        assert await store.load("gone") is None

    @pytest.mark.asyncio
    async def test_restored_history_survives(self, chat_service, store):
        """Test that a task for a session only in the store restores it first."""
        await store.save("s2", [Message.from_text("user", "Earlier message")])

        await chat_service.run_scheduled_task("s2", "Follow up")

        stored = await store.load("s2")
        assert [m.text for m in stored] == ["Earlier message", "Running scheduled task: Follow up"]

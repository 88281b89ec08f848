"""Session management for in-memory conversation agents."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from moodmix.chat.agent import ConversationAgent
from moodmix.exceptions import TurnInProgressError
from moodmix.models.session import Session
from moodmix.services.message_store import MessageStore
from moodmix.utils.ids import generate_id
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

AgentFactory = Callable[[Session], ConversationAgent]


class InMemorySessionManager:
    """Keeps one conversation agent per live session.

    Histories are written through to the message store, so a session that
    expired from memory (or predates a restart) is rebuilt from the store the
    next time its id is used.
    """

    def __init__(self, agent_factory: AgentFactory, store: MessageStore, session_timeout_minutes: int = 60):
        """Initialize session manager.

        Args:
            agent_factory: Builds an agent around a session
            store: Persistent message history
            session_timeout_minutes: Minutes of inactivity before a session is dropped from memory
        """
        self.agent_factory = agent_factory
        self.store = store
        self.agents: dict[str, ConversationAgent] = {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    async def get_or_create_agent(self, session_id: str | None = None) -> ConversationAgent:
        """Get the agent for an existing session or start a new one.

        Args:
            session_id: Optional existing session ID

        Returns:
            Agent for the (existing, restored or newly created) session
        """
        self._cleanup_expired_sessions()

        if session_id:
            agent = await self.get_agent(session_id)
            if agent is not None:
                return agent

        new_session_id = session_id or self._generate_session_id()
        logger.info(f"Creating session {new_session_id}")
        return self._register(Session(session_id=new_session_id))

    async def get_agent(self, session_id: str) -> ConversationAgent | None:
        """Get the agent for a session, restoring its history from the store if needed.

        Returns:
            The agent, or None if the session is unknown
        """
        self._cleanup_expired_sessions()

        agent = self.agents.get(session_id)
        if agent is not None:
            agent.session.update_activity()
            return agent

        messages = await self.store.load(session_id)
        if messages is None:
            return None

        logger.info(f"Restoring session {session_id} with {len(messages)} stored messages")
        return self._register(Session(session_id=session_id, messages=messages))

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session and its stored history.

        Returns:
            True if session was deleted, False if not found

        Raises:
            TurnInProgressError: If the session is in the middle of a turn
        """
        agent = self.agents.get(session_id)
        if agent is not None and agent.is_busy:
            raise TurnInProgressError(session_id)

        if agent is not None:
            agent.close()
            del self.agents[session_id]
        stored = await self.store.delete(session_id)
        if agent is not None or stored:
            logger.info(f"Deleted session {session_id}")
        return agent is not None or stored

    def get_session_count(self) -> int:
        """Get current number of sessions held in memory."""
        self._cleanup_expired_sessions()
        return len(self.agents)

    def _register(self, session: Session) -> ConversationAgent:
        agent = self.agent_factory(session)
        self.agents[session.session_id] = agent
        return agent

    def _generate_session_id(self) -> str:
        """Generate a new CUID-based session ID."""
        return generate_id()

    def _cleanup_expired_sessions(self) -> None:
        """Drop idle sessions from memory. Their history stays in the store."""
        current_time = datetime.now(UTC)
        expired_sessions = [
            session_id
            for session_id, agent in self.agents.items()
            if not agent.is_busy and current_time - agent.session.last_activity > self.session_timeout
        ]

        for session_id in expired_sessions:
            logger.debug(f"Session {session_id} expired")
            del self.agents[session_id]

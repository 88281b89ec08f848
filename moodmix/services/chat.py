"""Chat service wiring sessions, tools, the model and scheduled tasks together."""

from moodmix.chat.agent import AgentConfig, ConversationAgent
from moodmix.clients.anthropic import get_anthropic_client
from moodmix.config import Settings, get_settings
from moodmix.exceptions import ModelError
from moodmix.models.llm import ModelBackend
from moodmix.models.session import Session
from moodmix.services.library import PlaylistLibrary, playlist_library
from moodmix.services.message_store import FileMessageStore, InMemoryMessageStore, MessageStore
from moodmix.services.scheduler import ScheduledTask, TaskScheduler
from moodmix.services.session_manager import InMemorySessionManager
from moodmix.tools.registry import ToolsRegistry, create_default_registry
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)


class ChatService:
    """Entry point used by the HTTP layer."""

    def __init__(
        self,
        settings: Settings | None = None,
        model: ModelBackend | None = None,
        store: MessageStore | None = None,
        registry: ToolsRegistry | None = None,
        library: PlaylistLibrary | None = None,
    ):
        """Initialize chat service.

        Args:
            settings: Runtime settings (defaults to the environment)
            model: Model backend; the Anthropic client is created on first use when omitted
            store: Message store; file-backed when ``storage_dir`` is set, in-memory otherwise
            registry: Tools offered to the model
            library: Where approved playlists are saved
        """
        self.settings = settings or get_settings()
        self._model = model
        self.library = library or playlist_library
        self.registry = registry or create_default_registry(self.library)

        if store is None:
            if self.settings.storage_dir:
                store = FileMessageStore(self.settings.storage_dir)
            else:
                store = InMemoryMessageStore()
        self.store = store

        self.agent_config = AgentConfig(
            system_prompt=self.settings.system_prompt,
            max_steps=self.settings.max_steps,
            resume_after_confirmation=self.settings.resume_after_confirmation,
        )
        self.sessions = InMemorySessionManager(
            agent_factory=self._create_agent,
            store=self.store,
            session_timeout_minutes=self.settings.session_timeout_minutes,
        )
        self.scheduler = TaskScheduler(self.run_scheduled_task)

        logger.info(f"ChatService initialized with tools: {', '.join(self.registry.get_tool_names())}")

    @property
    def model(self) -> ModelBackend:
        """The model backend, created on first use.

        Raises:
            ModelError: If no backend was given and no API key is configured
        """
        if self._model is None:
            try:
                self._model = get_anthropic_client()
            except ValueError as e:
                raise ModelError(str(e)) from e
        return self._model

    def validate_message(self, message: str) -> None:
        """Reject user messages the model backend cannot accept.

        Raises:
            ValueError: If the message exceeds the backend's token limit
        """
        validate = getattr(self.model, "validate_message_tokens", None)
        if validate is not None:
            validate(message)

    async def get_or_create_agent(self, session_id: str | None = None) -> ConversationAgent:
        """Agent for the given session, creating the session when it does not exist."""
        return await self.sessions.get_or_create_agent(session_id)

    async def get_agent(self, session_id: str) -> ConversationAgent | None:
        """Agent for an existing session, or None."""
        return await self.sessions.get_agent(session_id)

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session, its history and its pending scheduled tasks.

        Raises:
            TurnInProgressError: If the session is in the middle of a turn
        """
        deleted = await self.sessions.delete_session(session_id)
        cancelled = self.scheduler.cancel_session(session_id)
        if cancelled:
            logger.info(f"Cancelled {cancelled} scheduled tasks for session {session_id}")
        return deleted

    def schedule_task(self, session_id: str, description: str, delay_seconds: float) -> ScheduledTask:
        """Schedule a reminder to be injected into a session's history."""
        return self.scheduler.schedule(session_id, description, delay_seconds)

    async def run_scheduled_task(self, session_id: str, description: str) -> None:
        """Inject a scheduled task into its session, if the session still exists."""
        agent = await self.sessions.get_agent(session_id)
        if agent is None:
            logger.warning(f"Session {session_id} no longer exists, dropping scheduled task: {description}")
            return
        await agent.run_scheduled_task(description)

    async def shutdown(self) -> None:
        """Stop pending scheduled tasks."""
        await self.scheduler.shutdown()

    def _create_agent(self, session: Session) -> ConversationAgent:
        return ConversationAgent(
            session=session,
            config=self.agent_config,
            registry=self.registry,
            model=self.model,
            store=self.store,
        )


_chat_service: ChatService | None = None


def get_chat_service() -> ChatService:
    """Get or create the chat service instance."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service

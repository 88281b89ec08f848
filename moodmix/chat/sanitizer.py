"""History repair before a conversation is sent back to the model."""

from moodmix.models.chat import Message, Part, ToolInvocationPart


def sanitize(messages: list[Message]) -> list[Message]:
    """Strip tool invocations that never received a result.

    Every input-available invocation is dropped: either nothing ever resolved
    it (a turn crashed mid-call), or a terminal record for the same call id
    exists elsewhere in the history and this copy is a stale duplicate.
    Messages emptied by this are removed; messages that had no parts to
    begin with are kept as they are. The input list and its messages
    are not modified, and the order of everything retained is preserved.
    """
    cleaned: list[Message] = []
    for message in messages:
        parts = [part for part in message.parts if not _is_incomplete(part)]
        if len(parts) == len(message.parts):
            cleaned.append(message)
        elif not parts:
            continue
        else:
            cleaned.append(message.model_copy(update={"parts": parts}))
    return cleaned


def _is_incomplete(part: Part) -> bool:
    return isinstance(part, ToolInvocationPart) and not part.is_terminal

import dataclasses
import json
import time
import uuid
from typing import Any, Dict, List, Optional

from tabpilot.agents.exceptions import TabPilotError

MESSAGE_ROLES = ("system", "user", "assistant", "tool")


@dataclasses.dataclass
class Message:
    """One entry of a session conversation, in chat-completions shape."""

    role: str
    content: Optional[Any] = None  # str, or a list of content parts for images
    message_id: str = dataclasses.field(default_factory=lambda: str(uuid.uuid4()))
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None

    def __post_init__(self):
        if self.role not in MESSAGE_ROLES:
            raise TabPilotError(
                f"Invalid message role '{self.role}'. Must be one of {MESSAGE_ROLES}",
                error_code="MESSAGE_ERROR",
            )
        if self.role == "tool" and not self.tool_call_id:
            raise TabPilotError(
                "Tool messages require a tool_call_id",
                error_code="MESSAGE_ERROR",
            )

    def to_llm_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = self.tool_calls
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data


class ConversationMemory:
    """
    Stores the conversation of one automation session as a list of Message objects.
    """

    def __init__(self) -> None:
        self.memory: List[Message] = []

    def add(
        self,
        message: Optional[Message] = None,
        *,
        role: Optional[str] = None,
        content: Optional[Any] = None,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
        tool_call_id: Optional[str] = None,
    ) -> str:
        """
        Adds a new message and returns its ID.
        If `message` is provided it is used directly, otherwise one is built from the keyword arguments.
        """
        if message is None:
            if role is None:
                raise TabPilotError(
                    "Either a Message object or role must be provided to add.",
                    error_code="MESSAGE_ERROR",
                )
            message = Message(role=role, content=content, tool_calls=tool_calls, tool_call_id=tool_call_id)
        self.memory.append(message)
        return message.message_id

    def get_messages(self) -> List[Dict[str, Any]]:
        """Messages in the shape the chat-completions API expects."""
        return [msg.to_llm_dict() for msg in self.memory]

    def retrieve_recent(self, n: int = 1) -> List[Message]:
        return self.memory[-n:] if n > 0 else []

    def retrieve_by_role(self, role: str, n: Optional[int] = None) -> List[Message]:
        filtered = [m for m in self.memory if m.role == role]
        if n:
            filtered = filtered[-n:]
        return filtered

    def reset_memory(self) -> None:
        """Clears the conversation, keeping leading system messages."""
        leading = []
        for msg in self.memory:
            if msg.role != "system":
                break
            leading.append(msg)
        self.memory = leading

    def __len__(self) -> int:
        return len(self.memory)


@dataclasses.dataclass
class ActionHistoryEntry:
    """An executed action, as shown back to the reasoning model."""

    action: Dict[str, Any]
    reasoning: Optional[str] = None
    timestamp: float = dataclasses.field(default_factory=time.time)
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionHistoryEntry":
        return cls(
            action=dict(data["action"]),
            reasoning=data.get("reasoning"),
            timestamp=data.get("timestamp", time.time()),
            success=data.get("success", True),
        )

    def summary_line(self) -> str:
        line = f"- {self.action.get('action')}: {json.dumps(self.action)}"
        if not self.success:
            line += " (failed)"
        return line


def format_history(history: List[ActionHistoryEntry], window: int = 10) -> str:
    """Render the most recent `window` actions, one per line."""
    recent = history[-window:] if window > 0 else []
    return "\n".join(entry.summary_line() for entry in recent)

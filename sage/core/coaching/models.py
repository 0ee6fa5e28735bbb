"""
Domain models for skill coaching.

These models represent the core business concepts. They have no dependencies
on external frameworks, databases, or APIs. Storage and wire formats live in
the infrastructure layer.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4


def utcnow() -> datetime:
    """Timezone-aware current time. All persisted timestamps are UTC."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Who authored a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Metric:
    """
    A user-defined measure of progress for one goal.

    Metrics are owned by their Goal and stored with it as JSON,
    never in a table of their own. The id only needs to be unique
    within the goal.
    """
    name: str
    unit: str
    id: str = field(default_factory=lambda: str(uuid4()))
    target_value: Optional[float] = None
    current_value: Optional[float] = None
    higher_is_better: bool = True

    @property
    def progress(self) -> Optional[float]:
        """
        Fraction of the way to the target, clamped to [0, 1].

        For lower-is-better metrics (e.g. "minutes per mile") reaching or
        going below the target counts as complete.
        """
        if self.target_value is None or self.current_value is None:
            return None
        if self.higher_is_better:
            if self.target_value <= 0:
                return 1.0 if self.current_value >= self.target_value else 0.0
            ratio = self.current_value / self.target_value
        else:
            if self.current_value <= 0:
                return 1.0
            ratio = self.target_value / self.current_value
        return max(0.0, min(1.0, ratio))


@dataclass
class Goal:
    """
    A skill the user wants to learn.

    This is the aggregate root of the coaching domain: conversations
    hang off a goal (loosely, by id) and metrics are embedded in it.
    """
    name: str
    id: Optional[int] = None
    description: Optional[str] = None
    category: Optional[str] = None
    current_level: Optional[str] = None
    target_level: Optional[str] = None
    metrics: list[Metric] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Goal name cannot be empty")

    @property
    def is_persisted(self) -> bool:
        return self.id is not None


@dataclass
class Conversation:
    """A chat thread between the user and the coach."""
    id: Optional[int] = None
    goal_id: Optional[int] = None  # Weak reference, not enforced by the store
    title: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def display_title(self) -> str:
        """The title, or the creation date when no title was set."""
        if self.title:
            return self.title
        local = self.created_at.astimezone()
        hour = local.strftime("%I").lstrip("0") or "12"
        return f"{local.strftime('%b')} {local.day}, {local.year} at {hour}:{local.strftime('%M %p')}"


@dataclass
class Message:
    """A single turn in a conversation."""
    conversation_id: int
    role: Role
    content: str = ""
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        # Accept raw strings from callers and rows alike
        self.role = Role(self.role)

    def append(self, chunk: str) -> None:
        """Grow the content with a streamed fragment."""
        self.content += chunk

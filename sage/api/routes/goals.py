"""
Skill goal endpoints.

Goals are the top level of the app: each one carries its own metrics
and owns (loosely) a list of conversations with the coach.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from ...core.coaching.models import Goal, Metric
from ..dependencies import ConversationRepositoryDep, GoalRepositoryDep
from .conversations import ConversationItem

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class MetricPayload(BaseModel):
    """A progress metric as sent and returned by the API."""
    id: Optional[str] = Field(None, description="Stable id; generated when omitted")
    name: str = Field(min_length=1)
    unit: str = ""
    target_value: Optional[float] = None
    current_value: Optional[float] = None
    higher_is_better: bool = True
    progress: Optional[float] = Field(None, description="Read-only: fraction of target reached")

    @classmethod
    def from_metric(cls, metric: Metric) -> "MetricPayload":
        return cls(
            id=metric.id,
            name=metric.name,
            unit=metric.unit,
            target_value=metric.target_value,
            current_value=metric.current_value,
            higher_is_better=metric.higher_is_better,
            progress=metric.progress,
        )

    def to_metric(self) -> Metric:
        metric = Metric(
            name=self.name,
            unit=self.unit,
            target_value=self.target_value,
            current_value=self.current_value,
            higher_is_better=self.higher_is_better,
        )
        if self.id:
            metric.id = self.id
        return metric


class GoalRequest(BaseModel):
    """Body for creating or replacing a goal."""
    name: str = Field(description="The skill to learn", min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    current_level: Optional[str] = None
    target_level: Optional[str] = None
    metrics: list[MetricPayload] = Field(default_factory=list)


class GoalResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    category: Optional[str]
    current_level: Optional[str]
    target_level: Optional[str]
    metrics: list[MetricPayload]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_goal(cls, goal: Goal) -> "GoalResponse":
        return cls(
            id=goal.id,
            name=goal.name,
            description=goal.description,
            category=goal.category,
            current_level=goal.current_level,
            target_level=goal.target_level,
            metrics=[MetricPayload.from_metric(m) for m in goal.metrics],
            created_at=goal.created_at,
            updated_at=goal.updated_at,
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=GoalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a skill goal",
)
def create_goal(request: GoalRequest, goals: GoalRepositoryDep) -> GoalResponse:
    goal = goals.insert(
        Goal(
            name=request.name.strip(),
            description=request.description,
            category=request.category,
            current_level=request.current_level,
            target_level=request.target_level,
            metrics=[m.to_metric() for m in request.metrics],
        )
    )
    return GoalResponse.from_goal(goal)


@router.get(
    "",
    response_model=list[GoalResponse],
    summary="List skill goals, newest first",
)
def list_goals(goals: GoalRepositoryDep) -> list[GoalResponse]:
    return [GoalResponse.from_goal(goal) for goal in goals.list_all()]


@router.get("/{goal_id}", response_model=GoalResponse, summary="Get a skill goal")
def get_goal(goal_id: int, goals: GoalRepositoryDep) -> GoalResponse:
    return GoalResponse.from_goal(goals.get(goal_id))


@router.put(
    "/{goal_id}",
    response_model=GoalResponse,
    summary="Replace a skill goal",
    description="Overwrites every field, metrics included. created_at is kept.",
)
def update_goal(goal_id: int, request: GoalRequest, goals: GoalRepositoryDep) -> GoalResponse:
    existing = goals.get(goal_id)

    existing.name = request.name.strip()
    existing.description = request.description
    existing.category = request.category
    existing.current_level = request.current_level
    existing.target_level = request.target_level
    existing.metrics = [m.to_metric() for m in request.metrics]

    return GoalResponse.from_goal(goals.update(existing))


@router.delete(
    "/{goal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a skill goal",
)
def delete_goal(goal_id: int, goals: GoalRepositoryDep) -> None:
    """
    Delete a goal. Deleting a goal that doesn't exist succeeds.

    Its conversations are left in place; they are no longer listed
    anywhere once the goal is gone.
    """
    goals.delete(goal_id)


@router.get(
    "/{goal_id}/conversations",
    response_model=list[ConversationItem],
    summary="List a goal's conversations, most recent first",
)
def list_goal_conversations(
    goal_id: int,
    goals: GoalRepositoryDep,
    conversations: ConversationRepositoryDep,
) -> list[ConversationItem]:
    goals.get(goal_id)
    return [
        ConversationItem.from_conversation(c)
        for c in conversations.list_for_goal(goal_id)
    ]

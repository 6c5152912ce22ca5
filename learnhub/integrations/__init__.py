"""External collaborators: generative content service and engagement hooks."""

from learnhub.integrations.content_generator import (
    ContentGenerator,
    GenerativeClient,
    parse_structured_response,
)
from learnhub.integrations.engagement import (
    AchievementHook,
    EngagementDispatcher,
    EngagementHook,
    StreakHook,
)

__all__ = [
    "ContentGenerator",
    "GenerativeClient",
    "parse_structured_response",
    "AchievementHook",
    "EngagementDispatcher",
    "EngagementHook",
    "StreakHook",
]

from scopegate.gates.commands import (
    canonical_command,
    command_matches,
    is_command_allowed,
    is_command_visible,
    visible_commands,
)
from scopegate.gates.projects import ProjectVisibility, VisibilityStatus, is_project_visible, resolve_project
from scopegate.gates.spaces import SpaceVisibility, filter_visible_spaces, is_space_allowed, resolve_space

__all__ = [
    "ProjectVisibility",
    "SpaceVisibility",
    "VisibilityStatus",
    "canonical_command",
    "command_matches",
    "filter_visible_spaces",
    "is_command_allowed",
    "is_command_visible",
    "is_project_visible",
    "is_space_allowed",
    "resolve_project",
    "resolve_space",
    "visible_commands",
]

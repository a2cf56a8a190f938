"""Prompt catalog served through ``prompts/list`` and ``prompts/get``."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Optional

PROMPTS: List[Dict[str, Any]] = [
    {
        "name": "daily_review",
        "title": "Daily Task Review",
        "description": "Review today's tasks and plan for tomorrow",
        "arguments": [
            {
                "name": "includeCompleted",
                "description": "Include completed tasks in the review",
                "required": False,
            }
        ],
    },
    {
        "name": "weekly_planning",
        "title": "Weekly Planning",
        "description": "Plan tasks for the upcoming week",
        "arguments": [
            {
                "name": "weekOffset",
                "description": (
                    "Week offset from current week (0 for this week, 1 for next week)"
                ),
                "required": False,
            }
        ],
    },
    {
        "name": "project_overview",
        "title": "Project Overview",
        "description": "Get an overview of all projects and their task counts",
        "arguments": [],
    },
    {
        "name": "overdue_tasks",
        "title": "Overdue Tasks Summary",
        "description": "List all overdue tasks organized by priority",
        "arguments": [
            {
                "name": "daysOverdue",
                "description": "Minimum days overdue to include",
                "required": False,
            }
        ],
    },
    {
        "name": "task_search",
        "title": "Advanced Task Search",
        "description": "Search for tasks with specific criteria",
        "arguments": [
            {"name": "query", "description": "Search query text", "required": True},
            {"name": "project", "description": "Filter by project name", "required": False},
            {
                "name": "priority",
                "description": "Filter by priority (1-5)",
                "required": False,
            },
        ],
    },
]


class PromptNotFoundError(LookupError):
    """Raised when a prompt name is absent from the catalog."""

    def __init__(self, prompt_name: Any):
        super().__init__(f"Prompt not found: {prompt_name}")
        self.prompt_name = prompt_name


def _number(value: Any) -> int:
    """Coerce a prompt argument (often sent as a string) to an int, default 0."""

    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def _daily_review(args: Dict[str, Any]) -> str:
    scope = (
        "Include completed tasks in the review."
        if _truthy(args.get("includeCompleted"))
        else "Focus on pending tasks only."
    )
    return (
        f"Please help me review my tasks for today. {scope} Provide a summary of:\n"
        "1. What tasks are due today\n"
        "2. What tasks are overdue\n"
        "3. High priority items that need attention\n"
        "4. Suggested next actions"
    )


def _weekly_planning(args: Dict[str, Any]) -> str:
    offset = _number(args.get("weekOffset"))
    week = "this week" if offset == 0 else f"week +{offset}"
    return (
        f"Help me plan my tasks for {week}. Please:\n"
        "1. List all tasks scheduled for the week\n"
        "2. Identify any conflicts or overloaded days\n"
        "3. Suggest task prioritization\n"
        "4. Recommend which tasks could be rescheduled if needed"
    )


def _project_overview(_args: Dict[str, Any]) -> str:
    return (
        "Provide a comprehensive overview of all my projects including:\n"
        "1. List of all active projects\n"
        "2. Task count per project (pending vs completed)\n"
        "3. Projects with upcoming deadlines\n"
        "4. Projects that may need more attention\n"
        "5. Overall project health assessment"
    )


def _overdue_tasks(args: Dict[str, Any]) -> str:
    days = _number(args.get("daysOverdue"))
    threshold = f" that are at least {days} days overdue" if days > 0 else ""
    return (
        f"Show me all overdue tasks{threshold}. Please:\n"
        "1. Group them by priority level\n"
        "2. Highlight the most critical overdue items\n"
        "3. Suggest which tasks to tackle first\n"
        "4. Identify any tasks that might need to be rescheduled or cancelled"
    )


def _task_search(args: Dict[str, Any]) -> str:
    text = f'Search for tasks matching: "{args.get("query") or ""}"'
    if args.get("project"):
        text += f' in project "{args["project"]}"'
    if args.get("priority"):
        text += f" with priority {args['priority']}"
    return (
        f"{text}. Please:\n"
        "1. List all matching tasks with their details\n"
        "2. Group them by relevance or category\n"
        "3. Highlight the most important matches\n"
        "4. Provide a summary of the search results"
    )


_TEMPLATES: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "daily_review": _daily_review,
    "weekly_planning": _weekly_planning,
    "project_overview": _project_overview,
    "overdue_tasks": _overdue_tasks,
    "task_search": _task_search,
}


def list_prompts() -> List[Dict[str, Any]]:
    return copy.deepcopy(PROMPTS)


def build_prompt_messages(
    prompt_name: str, arguments: Optional[Dict[str, Any]] = None
) -> List[Dict[str, Any]]:
    """Render the user message for ``prompt_name`` from ``arguments``."""

    args = arguments if isinstance(arguments, dict) else {}
    template = _TEMPLATES.get(prompt_name)
    if template is None:
        text = f"Execute the {prompt_name} prompt with the provided arguments."
    else:
        text = template(args)
    return [{"role": "user", "content": {"type": "text", "text": text}}]


def get_prompt(prompt_name: Any, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return the prompt descriptor plus its rendered ``messages``."""

    for prompt in PROMPTS:
        if prompt["name"] == prompt_name:
            rendered = copy.deepcopy(prompt)
            rendered["messages"] = build_prompt_messages(prompt_name, arguments)
            return rendered
    raise PromptNotFoundError(prompt_name)

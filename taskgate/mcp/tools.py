"""Static tool catalog exposed through ``tools/list`` and ``tools/call``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

ToolHandler = Callable[[Any, Dict[str, Any]], Any]

META_PREFIX = "mcp_"
BATCH_PREFIX = "batch_"
QUERY_PREFIXES = ("query_", "search_", "list_")
CATEGORIES = ("query", "write", "batch", "meta")


class ToolNotFoundError(LookupError):
    """Raised when a tool name is absent from the catalog."""

    def __init__(self, tool_name: Any):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


def tool_category(name: str) -> str:
    """Derive the coarse category of a tool from its name prefix."""

    if name.startswith(META_PREFIX):
        return "meta"
    if name.startswith(BATCH_PREFIX):
        return "batch"
    if name.startswith(QUERY_PREFIXES):
        return "query"
    return "write"


@dataclass(frozen=True)
class ToolSpec:
    """Descriptor and handler for one tool.

    ``handler`` receives the task repository and the call arguments and
    returns the repository's result (or an awaitable of it). Meta-tools have
    no handler; they are answered from the catalog itself.
    """

    name: str
    title: str
    description: str
    input_schema: Dict[str, Any]
    handler: Optional[ToolHandler] = None

    @property
    def category(self) -> str:
        return tool_category(self.name)

    @property
    def is_meta(self) -> bool:
        return self.handler is None

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "category": self.category,
        }


def _delegate(
    method: str,
    *arg_builders: Callable[[Dict[str, Any]], Any],
    pass_args: bool = True,
) -> ToolHandler:
    """Build a handler calling ``bridge.<method>``.

    Without ``arg_builders`` the whole argument object is passed through,
    unless ``pass_args`` is false, in which case the method takes nothing.
    """

    def handler(bridge: Any, args: Dict[str, Any]) -> Any:
        operation = getattr(bridge, method, None)
        if operation is None:
            raise NotImplementedError(
                f"{method} is not implemented by the task repository"
            )
        if not pass_args:
            return operation()
        if not arg_builders:
            return operation(args)
        return operation(*(build(args) for build in arg_builders))

    handler.__name__ = f"delegate_{method}"
    return handler


def _arg(key: str) -> Callable[[Dict[str, Any]], Any]:
    return lambda args: args.get(key)


def _const(value: Any) -> Callable[[Dict[str, Any]], Any]:
    return lambda _args: value


def _fields_property(example: str) -> Dict[str, Any]:
    return {
        "type": "array",
        "items": {"type": "string"},
        "description": f"Only return these fields (e.g., {example})",
    }


_PRIORITY = {"type": "number", "minimum": 1, "maximum": 5}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_DATE_TYPE = {"type": "string", "enum": ["due", "start", "scheduled", "completed"]}

_TASK_FIELDS_SCHEMA: Dict[str, Any] = {
    "content": {"type": "string", "description": "Task content text"},
    "filePath": {
        "type": "string",
        "description": "Target markdown file path (e.g., Daily/2025-08-15.md)",
    },
    "project": {"type": "string", "description": "Project name to append as +project"},
    "context": {"type": "string", "description": "Context name to append as @context"},
    "priority": {**_PRIORITY, "description": "1-5 priority"},
    "dueDate": {"type": "string", "description": "Due date YYYY-MM-DD"},
    "startDate": {"type": "string", "description": "Start date YYYY-MM-DD"},
    "tags": {**_STRING_LIST, "description": "Array of tags (without #)"},
    "parent": {"type": "string", "description": "Parent task ID to create a subtask under"},
    "completed": {
        "type": "boolean",
        "description": "Whether the task is already completed (for recording purposes)",
    },
    "completedDate": {
        "type": "string",
        "description": "Completion date YYYY-MM-DD (only used when completed is true)",
    },
}


def _date_range_schema(example: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "from": {"type": "string"},
            "to": {"type": "string"},
            "limit": {"type": "number"},
            "fields": _fields_property(example),
        },
    }


TOOLS: List[ToolSpec] = [
    ToolSpec(
        name="mcp_list_tools",
        title="List Tools (Summary)",
        description=(
            "List all available tools with brief descriptions. Use this to "
            "discover tools without fetching full schemas."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "enum": ["query", "write", "batch", "meta", "all"],
                    "description": (
                        "Filter by category: query (read operations), write "
                        "(modifications), batch (bulk operations), meta (tool "
                        "discovery), all (default)"
                    ),
                }
            },
        },
    ),
    ToolSpec(
        name="mcp_get_tool_schema",
        title="Get Tool Schema",
        description=(
            "Get the detailed input schema for a specific tool. Use after "
            "mcp_list_tools to get parameter details."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "toolName": {"type": "string", "description": "The exact name of the tool"}
            },
            "required": ["toolName"],
        },
    ),
    ToolSpec(
        name="update_task_status",
        title="Update Task Status",
        description="Update a single task's completion or status field.",
        input_schema={
            "type": "object",
            "properties": {
                "taskId": {"type": "string"},
                "status": {
                    "type": "string",
                    "description": "Optional status mark to set instead of completed",
                },
                "completed": {"type": "boolean", "description": "Set completed true/false"},
            },
            "required": ["taskId"],
        },
        handler=_delegate("update_task_status"),
    ),
    ToolSpec(
        name="batch_update_task_status",
        title="Batch Update Task Status",
        description="Batch update completion/status for multiple tasks.",
        input_schema={
            "type": "object",
            "properties": {
                "taskIds": _STRING_LIST,
                "status": {"type": "string"},
                "completed": {"type": "boolean"},
            },
            "required": ["taskIds"],
        },
        handler=_delegate("batch_update_task_status"),
    ),
    ToolSpec(
        name="postpone_tasks",
        title="Postpone Tasks",
        description="Batch postpone tasks to a new due date (YYYY-MM-DD)",
        input_schema={
            "type": "object",
            "properties": {"taskIds": _STRING_LIST, "newDate": {"type": "string"}},
            "required": ["taskIds", "newDate"],
        },
        handler=_delegate("postpone_tasks"),
    ),
    ToolSpec(
        name="list_all_metadata",
        title="List Tags/Projects/Contexts",
        description="List all used tags, project names, and contexts.",
        input_schema={"type": "object", "properties": {}},
        handler=_delegate("list_all_metadata", pass_args=False),
    ),
    ToolSpec(
        name="list_tasks_for_period",
        title="List Tasks For Period",
        description="List tasks for a day/month/year based on dateType (default: due).",
        input_schema={
            "type": "object",
            "properties": {
                "period": {"type": "string", "enum": ["day", "month", "year"]},
                "date": {"type": "string", "description": "Base date YYYY-MM-DD"},
                "dateType": {**_DATE_TYPE, "description": "Which date field to use"},
                "limit": {"type": "number"},
                "fields": _fields_property("['id', 'content', 'metadata.dueDate']"),
            },
            "required": ["period", "date"],
        },
        handler=_delegate("list_tasks_for_period"),
    ),
    ToolSpec(
        name="list_tasks_in_range",
        title="List Tasks In Range",
        description="List tasks between from/to dates (default dateType: due).",
        input_schema={
            "type": "object",
            "properties": {
                "from": {"type": "string"},
                "to": {"type": "string"},
                "dateType": _DATE_TYPE,
                "limit": {"type": "number"},
                "fields": _fields_property("['id', 'content', 'metadata.dueDate']"),
            },
            "required": ["from", "to"],
        },
        handler=_delegate("list_tasks_in_range"),
    ),
    ToolSpec(
        name="add_project_quick_capture",
        title="Add Project Task to Quick Capture",
        description=(
            "Add a project-tagged task to the Quick Capture target "
            "(fixed or daily note)."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Task content text"},
                "project": {"type": "string", "description": "Project name to tag as +project"},
                "tags": _STRING_LIST,
                "priority": _PRIORITY,
                "dueDate": {"type": "string"},
                "startDate": {"type": "string"},
                "context": {"type": "string"},
                "heading": {"type": "string"},
            },
            "required": ["content", "project"],
        },
        handler=_delegate("add_project_quick_capture"),
    ),
    ToolSpec(
        name="create_task_in_daily_note",
        title="Create Task in Daily Note",
        description=(
            "Create a task in today's daily note. Creates the note if missing. "
            "Supports creating already-completed tasks for recording purposes."
        ),
        input_schema={
            "type": "object",
            "properties": {
                **{k: v for k, v in _TASK_FIELDS_SCHEMA.items() if k != "filePath"},
                "heading": {
                    "type": "string",
                    "description": "Optional heading to place task under",
                },
            },
            "required": ["content"],
        },
        handler=_delegate("create_task_in_daily_note"),
    ),
    ToolSpec(
        name="query_tasks",
        title="Query Tasks",
        description="Query tasks with filters and sorting options",
        input_schema={
            "type": "object",
            "properties": {
                "filter": {
                    "type": "object",
                    "properties": {
                        "completed": {"type": "boolean"},
                        "project": {"type": "string"},
                        "context": {"type": "string"},
                        "priority": _PRIORITY,
                        "tags": _STRING_LIST,
                    },
                },
                "limit": {"type": "number"},
                "offset": {"type": "number"},
                "sort": {
                    "type": "object",
                    "properties": {
                        "field": {"type": "string"},
                        "order": {"type": "string", "enum": ["asc", "desc"]},
                    },
                },
                "fields": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": (
                        "Only return these fields to reduce token usage (e.g., "
                        "['id', 'content', 'completed', 'metadata.priority']). "
                        "Supports dot notation for nested fields."
                    ),
                },
            },
        },
        handler=_delegate("query_tasks"),
    ),
    ToolSpec(
        name="update_task",
        title="Update Task",
        description="Update a task by ID with new properties",
        input_schema={
            "type": "object",
            "properties": {"taskId": {"type": "string"}, "updates": {"type": "object"}},
            "required": ["taskId", "updates"],
        },
        handler=_delegate("update_task"),
    ),
    ToolSpec(
        name="delete_task",
        title="Delete Task",
        description="Delete a task by ID",
        input_schema={
            "type": "object",
            "properties": {
                "taskId": {"type": "string"},
                "deleteChildren": {"type": "boolean"},
            },
            "required": ["taskId"],
        },
        handler=_delegate("delete_task"),
    ),
    ToolSpec(
        name="create_task",
        title="Create Task",
        description=(
            "Create a new task with specified properties. If the target file "
            "does not exist, it will be created automatically. Supports creating "
            "already-completed tasks for recording purposes."
        ),
        input_schema={
            "type": "object",
            "properties": dict(_TASK_FIELDS_SCHEMA),
            "required": ["content"],
        },
        handler=_delegate("create_task"),
    ),
    ToolSpec(
        name="query_project_tasks",
        title="Query Project Tasks",
        description="Get all tasks for a specific project",
        input_schema={
            "type": "object",
            "properties": {
                "project": {"type": "string"},
                "fields": _fields_property("['id', 'content', 'completed']"),
            },
            "required": ["project"],
        },
        handler=_delegate("query_project_tasks", _arg("project")),
    ),
    ToolSpec(
        name="query_context_tasks",
        title="Query Context Tasks",
        description="Get all tasks for a specific context",
        input_schema={
            "type": "object",
            "properties": {
                "context": {"type": "string"},
                "fields": _fields_property("['id', 'content', 'completed']"),
            },
            "required": ["context"],
        },
        handler=_delegate("query_context_tasks", _arg("context")),
    ),
    ToolSpec(
        name="query_by_priority",
        title="Query by Priority",
        description="Get tasks with a specific priority level",
        input_schema={
            "type": "object",
            "properties": {
                "priority": _PRIORITY,
                "limit": {"type": "number"},
                "fields": _fields_property("['id', 'content', 'metadata.priority']"),
            },
            "required": ["priority"],
        },
        handler=_delegate("query_by_priority", _arg("priority"), _arg("limit")),
    ),
    ToolSpec(
        name="query_by_due_date",
        title="Query by Due Date",
        description="Get tasks within a due date range",
        input_schema=_date_range_schema("['id', 'content', 'metadata.dueDate']"),
        handler=_delegate(
            "query_by_date", _const("due"), _arg("from"), _arg("to"), _arg("limit")
        ),
    ),
    ToolSpec(
        name="query_by_start_date",
        title="Query by Start Date",
        description="Get tasks within a start date range",
        input_schema=_date_range_schema("['id', 'content', 'metadata.startDate']"),
        handler=_delegate(
            "query_by_date", _const("start"), _arg("from"), _arg("to"), _arg("limit")
        ),
    ),
    ToolSpec(
        name="batch_update_text",
        title="Batch Update Text",
        description="Find and replace text in multiple tasks",
        input_schema={
            "type": "object",
            "properties": {
                "taskIds": _STRING_LIST,
                "findText": {"type": "string"},
                "replaceText": {"type": "string"},
            },
            "required": ["taskIds", "findText", "replaceText"],
        },
        handler=_delegate("batch_update_text"),
    ),
    ToolSpec(
        name="batch_create_subtasks",
        title="Batch Create Subtasks",
        description="Create multiple subtasks under a parent task",
        input_schema={
            "type": "object",
            "properties": {
                "parentTaskId": {"type": "string"},
                "subtasks": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "content": {"type": "string"},
                            "priority": _PRIORITY,
                            "dueDate": {"type": "string"},
                        },
                        "required": ["content"],
                    },
                },
            },
            "required": ["parentTaskId", "subtasks"],
        },
        handler=_delegate("batch_create_subtasks"),
    ),
    ToolSpec(
        name="search_tasks",
        title="Search Tasks",
        description="Search tasks by text query across multiple fields",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string"},
                "limit": {"type": "number"},
                "searchIn": {
                    "type": "array",
                    "items": {
                        "type": "string",
                        "enum": ["content", "tags", "project", "context"],
                    },
                },
                "fields": _fields_property("['id', 'content', 'metadata.tags']"),
            },
            "required": ["query"],
        },
        handler=_delegate("search_tasks"),
    ),
    ToolSpec(
        name="batch_create_tasks",
        title="Batch Create Tasks",
        description="Create multiple tasks at once with optional default file path",
        input_schema={
            "type": "object",
            "properties": {
                "tasks": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": dict(_TASK_FIELDS_SCHEMA),
                        "required": ["content"],
                    },
                    "description": "Array of tasks to create",
                },
                "defaultFilePath": {
                    "type": "string",
                    "description": (
                        "Default file path for all tasks (can be overridden per task)"
                    ),
                },
            },
            "required": ["tasks"],
        },
        handler=_delegate("batch_create_tasks"),
    ),
]

_TOOLS_BY_NAME: Dict[str, ToolSpec] = {tool.name: tool for tool in TOOLS}


def get_tools() -> List[Dict[str, Any]]:
    """Return full descriptors, input schemas included."""

    return [tool.describe() for tool in TOOLS]


def find_tool(name: Any) -> Optional[ToolSpec]:
    if not isinstance(name, str):
        return None
    return _TOOLS_BY_NAME.get(name)


def list_tool_summaries(category: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return ``{name, title, description, category}`` for each tool.

    ``None`` or ``"all"`` selects every tool; any other value keeps only tools
    whose derived category matches.
    """

    selected = category or "all"
    return [
        tool.summary()
        for tool in TOOLS
        if selected == "all" or tool.category == selected
    ]


def get_tool_schema(name: Any) -> Dict[str, Any]:
    """Return the full descriptor for ``name`` or raise :class:`ToolNotFoundError`."""

    tool = find_tool(name)
    if tool is None:
        raise ToolNotFoundError(name)
    return tool.describe()

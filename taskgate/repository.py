"""Task repository bridge consumed by the MCP tool executor.

:class:`TaskRepository` is the contract the gateway delegates to. Real
deployments provide their own implementation backed by the host application's
task index; :class:`MemoryTaskRepository` is a self-contained reference used by
``taskgate serve --demo`` and the test-suite.
"""

from __future__ import annotations

import abc
import calendar
import copy
import itertools
import logging
import threading
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DATE_FIELDS = {
    "due": "dueDate",
    "start": "startDate",
    "scheduled": "scheduledDate",
    "completed": "completedDate",
}

DEFAULT_QUERY_LIMIT = 100
DEFAULT_QUICK_CAPTURE_FILE = "Inbox.md"
DEFAULT_TASK_FILE = "Tasks.md"

# Keys stored on the task itself; everything else in ``updates`` is metadata.
_TOP_LEVEL_KEYS = {"content", "completed", "status", "filePath", "line"}
# Request-level keys that are never persisted on a task.
_RESERVED_KEYS = {"id", "metadata", "fields", "raw", "defaultFilePath", "taskId"}


class RepositoryError(Exception):
    """Business failure raised by a task repository operation."""


class TaskNotFoundError(RepositoryError):
    """Raised when an operation names a task id that does not exist."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskRepository(abc.ABC):
    """Operations the gateway may delegate to.

    Each method returns a JSON-compatible value (usually a dictionary with a
    ``success`` flag or a ``tasks`` list) or raises an exception whose message
    is readable by a human. Implementations may be synchronous or async.
    """

    @abc.abstractmethod
    async def query_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Filter, sort and paginate tasks."""

    @abc.abstractmethod
    async def create_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Create a single task."""

    @abc.abstractmethod
    async def create_task_in_daily_note(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Create a task in today's daily note."""

    @abc.abstractmethod
    async def update_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Apply ``args["updates"]`` to ``args["taskId"]``."""

    @abc.abstractmethod
    async def delete_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Delete ``args["taskId"]`` and optionally its children."""

    @abc.abstractmethod
    async def query_project_tasks(self, project: str) -> Dict[str, Any]:
        """Return every task tagged with ``project``."""

    @abc.abstractmethod
    async def query_context_tasks(self, context: str) -> Dict[str, Any]:
        """Return every task tagged with ``context``."""

    @abc.abstractmethod
    async def query_by_priority(
        self, priority: int, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """Return tasks with exactly ``priority``."""

    @abc.abstractmethod
    async def query_by_date(
        self,
        date_type: str,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Return tasks whose ``date_type`` date lies in the inclusive range."""

    @abc.abstractmethod
    async def batch_update_text(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Find and replace text in several tasks."""

    @abc.abstractmethod
    async def batch_create_subtasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Create several subtasks under one parent."""

    @abc.abstractmethod
    async def search_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Full text search across task fields."""

    @abc.abstractmethod
    async def batch_create_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Create several tasks at once."""

    @abc.abstractmethod
    async def add_project_quick_capture(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Append a project task to the quick capture target."""

    @abc.abstractmethod
    async def update_task_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Set completion or a status mark on one task."""

    @abc.abstractmethod
    async def batch_update_task_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Set completion or a status mark on several tasks."""

    @abc.abstractmethod
    async def postpone_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Move the due date of several tasks."""

    @abc.abstractmethod
    async def list_all_metadata(self) -> Dict[str, Any]:
        """Return all tags, projects and contexts in use."""

    @abc.abstractmethod
    async def list_tasks_for_period(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Return tasks within a day, month or year around ``args["date"]``."""

    @abc.abstractmethod
    async def list_tasks_in_range(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Return tasks between ``args["from"]`` and ``args["to"]``."""


def _require_str(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RepositoryError(f"{key} must be a non-empty string")
    return value.strip()


def _require_ids(args: Dict[str, Any], key: str = "taskIds") -> List[str]:
    value = args.get(key)
    if not isinstance(value, list) or not value:
        raise RepositoryError(f"{key} must be a non-empty list of task ids")
    return [str(item) for item in value]


def _parse_date(value: Any, label: str) -> str:
    if not isinstance(value, str):
        raise RepositoryError(f"{label} must be a YYYY-MM-DD string")
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise RepositoryError(f"Invalid {label}: {value}") from exc


def period_bounds(period: str, base: str) -> Tuple[str, str]:
    """Return the inclusive ``(from, to)`` dates of ``period`` around ``base``."""

    day = date.fromisoformat(_parse_date(base, "date"))
    if period == "day":
        return day.isoformat(), day.isoformat()
    if period == "month":
        last = calendar.monthrange(day.year, day.month)[1]
        return day.replace(day=1).isoformat(), day.replace(day=last).isoformat()
    if period == "year":
        return date(day.year, 1, 1).isoformat(), date(day.year, 12, 31).isoformat()
    raise RepositoryError(f"Unsupported period: {period}")


class MemoryTaskRepository(TaskRepository):
    """Dictionary-backed :class:`TaskRepository` guarded by a lock."""

    def __init__(
        self,
        tasks: Optional[Iterable[Dict[str, Any]]] = None,
        *,
        quick_capture_file: str = DEFAULT_QUICK_CAPTURE_FILE,
        default_file: str = DEFAULT_TASK_FILE,
        today: Optional[date] = None,
    ):
        self.quick_capture_file = quick_capture_file
        self.default_file = default_file
        self._today = today
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        for task in tasks or []:
            self._insert(task)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    # -- internal helpers -------------------------------------------------

    def today(self) -> str:
        return (self._today or date.today()).isoformat()

    def _next_id(self) -> str:
        while True:
            candidate = f"task-{next(self._ids)}"
            if candidate not in self._tasks:
                return candidate

    def _next_line(self, file_path: str) -> int:
        lines = [t["line"] for t in self._tasks.values() if t["filePath"] == file_path]
        return max(lines, default=0) + 1

    def _insert(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        fields = copy.deepcopy(fields)
        with self._lock:
            metadata = dict(fields.get("metadata") or {})
            for key, value in fields.items():
                if key not in _TOP_LEVEL_KEYS and key not in _RESERVED_KEYS:
                    metadata[key] = value
            parent = self._get(metadata["parent"]) if metadata.get("parent") else None

            completed = bool(fields.get("completed", False))
            if completed and not metadata.get("completedDate"):
                metadata["completedDate"] = self.today()
            if not completed:
                metadata.pop("completedDate", None)
            for key in ("tags", "children", "heading", "dependsOn"):
                metadata.setdefault(key, [])

            file_path = fields.get("filePath") or self.default_file
            task = {
                "id": str(fields.get("id") or self._next_id()),
                "content": str(fields.get("content", "")),
                "filePath": file_path,
                "line": fields.get("line") or self._next_line(file_path),
                "completed": completed,
                "status": fields.get("status") or ("x" if completed else " "),
                "metadata": metadata,
            }
            self._tasks[task["id"]] = task
            if parent is not None:
                parent["metadata"]["children"].append(task["id"])
            return copy.deepcopy(task)

    def _get(self, task_id: Any) -> Dict[str, Any]:
        task = self._tasks.get(str(task_id)) if task_id is not None else None
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task

    def _snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(task) for task in self._tasks.values()]

    def _apply_updates(self, task: Dict[str, Any], updates: Dict[str, Any]) -> None:
        for key, value in updates.items():
            if key == "metadata" and isinstance(value, dict):
                task["metadata"].update(value)
            elif key == "completed":
                self._set_completed(task, bool(value))
            elif key in _TOP_LEVEL_KEYS:
                task[key] = value
            elif key != "id":
                task["metadata"][key] = value

    def _set_completed(self, task: Dict[str, Any], completed: bool) -> None:
        task["completed"] = completed
        task["status"] = "x" if completed else " "
        if completed:
            task["metadata"].setdefault("completedDate", self.today())
        else:
            task["metadata"].pop("completedDate", None)

    @staticmethod
    def _page(tasks: List[Dict[str, Any]], limit: Any, offset: Any = 0) -> Dict[str, Any]:
        start = offset if isinstance(offset, int) and offset > 0 else 0
        size = limit if isinstance(limit, int) and limit > 0 else DEFAULT_QUERY_LIMIT
        return {"tasks": tasks[start : start + size], "total": len(tasks)}

    def _create(self, args: Dict[str, Any], file_path: Optional[str] = None) -> Dict[str, Any]:
        content = _require_str(args, "content")
        fields = dict(args)
        fields["content"] = content
        if file_path:
            fields["filePath"] = file_path
        return self._insert(fields)

    def _batch(self, task_ids: List[str], action) -> Dict[str, Any]:
        updated = 0
        errors: List[Dict[str, str]] = []
        with self._lock:
            for task_id in task_ids:
                try:
                    action(self._get(task_id))
                    updated += 1
                except RepositoryError as exc:
                    errors.append({"taskId": task_id, "error": str(exc)})
        return {"success": not errors, "updated": updated, "errors": errors}

    def _filter_by_date(
        self,
        date_type: str,
        from_date: Optional[str],
        to_date: Optional[str],
    ) -> List[Dict[str, Any]]:
        key = DATE_FIELDS.get(date_type)
        if key is None:
            raise RepositoryError(f"Unsupported dateType: {date_type}")
        lower = _parse_date(from_date, "from") if from_date else None
        upper = _parse_date(to_date, "to") if to_date else None
        matched = []
        for task in self._snapshot():
            value = task["metadata"].get(key)
            if not value:
                continue
            if lower and value < lower:
                continue
            if upper and value > upper:
                continue
            matched.append(task)
        matched.sort(key=lambda t: t["metadata"][key])
        return matched

    # -- queries ----------------------------------------------------------

    async def query_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        criteria = args.get("filter") or {}
        tasks = self._snapshot()
        if "completed" in criteria:
            tasks = [t for t in tasks if t["completed"] == bool(criteria["completed"])]
        for key in ("project", "context", "priority"):
            if criteria.get(key) is not None:
                tasks = [t for t in tasks if t["metadata"].get(key) == criteria[key]]
        wanted_tags = criteria.get("tags") or []
        if wanted_tags:
            tasks = [
                t for t in tasks if set(wanted_tags).issubset(t["metadata"].get("tags", []))
            ]

        sort = args.get("sort") or {}
        sort_field = sort.get("field")
        if sort_field:
            def sort_key(task):
                value = task.get(sort_field, task["metadata"].get(sort_field))
                return (value is None, value if value is not None else "")

            tasks.sort(key=sort_key, reverse=sort.get("order") == "desc")
        return self._page(tasks, args.get("limit"), args.get("offset"))

    async def query_project_tasks(self, project: str) -> Dict[str, Any]:
        tasks = [t for t in self._snapshot() if t["metadata"].get("project") == project]
        return {"tasks": tasks, "total": len(tasks)}

    async def query_context_tasks(self, context: str) -> Dict[str, Any]:
        tasks = [t for t in self._snapshot() if t["metadata"].get("context") == context]
        return {"tasks": tasks, "total": len(tasks)}

    async def query_by_priority(
        self, priority: int, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        tasks = [t for t in self._snapshot() if t["metadata"].get("priority") == priority]
        return self._page(tasks, limit)

    async def query_by_date(
        self,
        date_type: str,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        return self._page(self._filter_by_date(date_type, from_date, to_date), limit)

    async def search_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        query = _require_str(args, "query").lower()
        search_in = args.get("searchIn") or ["content", "tags", "project", "context"]
        matched = []
        for task in self._snapshot():
            haystacks: List[str] = []
            if "content" in search_in:
                haystacks.append(task["content"])
            if "tags" in search_in:
                haystacks.extend(task["metadata"].get("tags", []))
            for key in ("project", "context"):
                if key in search_in and task["metadata"].get(key):
                    haystacks.append(task["metadata"][key])
            if any(query in str(value).lower() for value in haystacks):
                matched.append(task)
        return self._page(matched, args.get("limit"))

    async def list_all_metadata(self) -> Dict[str, Any]:
        tags, projects, contexts = set(), set(), set()
        for task in self._snapshot():
            metadata = task["metadata"]
            tags.update(metadata.get("tags", []))
            if metadata.get("project"):
                projects.add(metadata["project"])
            if metadata.get("context"):
                contexts.add(metadata["context"])
        return {
            "tags": sorted(tags),
            "projects": sorted(projects),
            "contexts": sorted(contexts),
        }

    async def list_tasks_for_period(self, args: Dict[str, Any]) -> Dict[str, Any]:
        period = _require_str(args, "period")
        from_date, to_date = period_bounds(period, _require_str(args, "date"))
        date_type = args.get("dateType") or "due"
        result = self._page(
            self._filter_by_date(date_type, from_date, to_date), args.get("limit")
        )
        result["range"] = {"from": from_date, "to": to_date, "dateType": date_type}
        return result

    async def list_tasks_in_range(self, args: Dict[str, Any]) -> Dict[str, Any]:
        from_date = _parse_date(args.get("from"), "from")
        to_date = _parse_date(args.get("to"), "to")
        date_type = args.get("dateType") or "due"
        result = self._page(
            self._filter_by_date(date_type, from_date, to_date), args.get("limit")
        )
        result["range"] = {"from": from_date, "to": to_date, "dateType": date_type}
        return result

    # -- writes -----------------------------------------------------------

    async def create_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        task = self._create(args)
        logger.debug("Created task %s", task["id"])
        return {"success": True, "task": task}

    async def create_task_in_daily_note(self, args: Dict[str, Any]) -> Dict[str, Any]:
        file_path = f"Daily/{self.today()}.md"
        fields = dict(args)
        heading = fields.pop("heading", None)
        if heading:
            fields["heading"] = [heading]
        task = self._create(fields, file_path=file_path)
        return {"success": True, "task": task, "filePath": file_path}

    async def add_project_quick_capture(self, args: Dict[str, Any]) -> Dict[str, Any]:
        _require_str(args, "project")
        fields = dict(args)
        heading = fields.pop("heading", None)
        if heading:
            fields["heading"] = [heading]
        task = self._create(fields, file_path=self.quick_capture_file)
        return {"success": True, "task": task, "filePath": self.quick_capture_file}

    async def update_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        updates = args.get("updates")
        if not isinstance(updates, dict):
            raise RepositoryError("updates must be an object")
        with self._lock:
            task = self._get(args.get("taskId"))
            self._apply_updates(task, updates)
            return {"success": True, "task": copy.deepcopy(task)}

    async def update_task_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            task = self._get(args.get("taskId"))
            self._apply_status(task, args)
            return {"success": True, "task": copy.deepcopy(task)}

    def _apply_status(self, task: Dict[str, Any], args: Dict[str, Any]) -> None:
        if "completed" in args:
            self._set_completed(task, bool(args["completed"]))
        elif isinstance(args.get("status"), str):
            status = args["status"]
            self._set_completed(task, status.lower() == "x")
            task["status"] = status
        else:
            raise RepositoryError("Either completed or status must be provided")

    async def batch_update_task_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        task_ids = _require_ids(args)
        return self._batch(task_ids, lambda task: self._apply_status(task, args))

    async def postpone_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        task_ids = _require_ids(args)
        new_date = _parse_date(args.get("newDate"), "newDate")

        def postpone(task):
            task["metadata"]["dueDate"] = new_date

        return self._batch(task_ids, postpone)

    async def batch_update_text(self, args: Dict[str, Any]) -> Dict[str, Any]:
        task_ids = _require_ids(args)
        find_text = args.get("findText")
        replace_text = args.get("replaceText")
        if not isinstance(find_text, str) or not find_text:
            raise RepositoryError("findText must be a non-empty string")
        if not isinstance(replace_text, str):
            raise RepositoryError("replaceText must be a string")

        def rewrite(task):
            if find_text not in task["content"]:
                raise RepositoryError(f"Text not found in task {task['id']}")
            task["content"] = task["content"].replace(find_text, replace_text)

        return self._batch(task_ids, rewrite)

    async def delete_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            task = self._get(args.get("taskId"))
            doomed = [task["id"]]
            if args.get("deleteChildren"):
                pending = list(task["metadata"].get("children", []))
                while pending:
                    child_id = pending.pop()
                    child = self._tasks.get(child_id)
                    if child is not None:
                        doomed.append(child_id)
                        pending.extend(child["metadata"].get("children", []))
            for task_id in doomed:
                removed = self._tasks.pop(task_id)
                parent = self._tasks.get(removed["metadata"].get("parent") or "")
                if parent is not None and task_id in parent["metadata"]["children"]:
                    parent["metadata"]["children"].remove(task_id)
        return {"success": True, "deleted": doomed}

    async def batch_create_subtasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        parent_id = _require_str(args, "parentTaskId")
        subtasks = args.get("subtasks")
        if not isinstance(subtasks, list) or not subtasks:
            raise RepositoryError("subtasks must be a non-empty list")
        with self._lock:
            parent = self._get(parent_id)
            created = [
                self._create(
                    {**subtask, "parent": parent_id}, file_path=parent["filePath"]
                )
                for subtask in subtasks
            ]
        return {"success": True, "created": len(created), "tasks": created}

    async def batch_create_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        items = args.get("tasks")
        if not isinstance(items, list) or not items:
            raise RepositoryError("tasks must be a non-empty list")
        default_path = args.get("defaultFilePath")
        created: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []
        for index, item in enumerate(items):
            try:
                if not isinstance(item, dict):
                    raise RepositoryError("task entries must be objects")
                created.append(
                    self._create(item, file_path=item.get("filePath") or default_path)
                )
            except RepositoryError as exc:
                errors.append({"index": index, "error": str(exc)})
        return {
            "success": not errors,
            "created": len(created),
            "tasks": created,
            "errors": errors,
        }


def demo_tasks() -> List[Dict[str, Any]]:
    """Sample tasks served by ``taskgate serve --demo``."""

    today = date.today().isoformat()
    return [
        {
            "id": "demo-1",
            "content": "Write the quarterly report",
            "filePath": "Work/Reports.md",
            "project": "reports",
            "priority": 4,
            "dueDate": today,
            "tags": ["work"],
        },
        {
            "id": "demo-2",
            "content": "Book dentist appointment",
            "filePath": "Personal.md",
            "context": "phone",
            "priority": 2,
            "tags": ["health"],
        },
        {
            "id": "demo-3",
            "content": "Review pull requests",
            "filePath": "Work/Daily.md",
            "project": "reports",
            "completed": True,
            "tags": ["work", "review"],
        },
    ]

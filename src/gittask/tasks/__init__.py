from ._helpers import Workspace, open_workspace
from .comments import add_comment, delete_comment, edit_comment, list_comments
from .create import create_task
from .delete import clear_tasks, delete_tasks
from .labels import add_label, delete_label, list_labels, remove_label
from .query import list_tasks, show_task, task_stats
from .remote import pull_tasks, push_tasks
from .transfer import export_tasks, import_tasks
from .update import edit_property, get_property, replace_text, set_property, set_status, unset_property

__all__ = [
    "Workspace", "open_workspace",
    "create_task",
    "set_status", "get_property", "set_property", "unset_property", "edit_property", "replace_text",
    "add_label", "remove_label", "delete_label", "list_labels",
    "add_comment", "edit_comment", "delete_comment", "list_comments",
    "export_tasks", "import_tasks",
    "delete_tasks", "clear_tasks",
    "list_tasks", "show_task", "task_stats",
    "pull_tasks", "push_tasks",
]

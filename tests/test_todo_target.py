import pytest

from core.errors import TargetError
from core.operation_types import OperationStatus
from models.operation import Operation
from services.sync_executor import ExecutorConfig, SyncExecutor
from services.todo_target import LocalTodoTarget, load_list


@pytest.fixture()
def local_target(session_factory):
    return LocalTodoTarget(session_factory=session_factory)


def test_add_and_complete_todo(local_target):
    todo_id = local_target.add_todo("Write report", notes="Q3", tags=["work"], checklist=["draft", "send"])

    todo = local_target.get_todo(todo_id)
    assert todo.title == "Write report"
    assert todo.status == "open"
    assert load_list(todo.tags) == ["work"]
    assert load_list(todo.checklist) == ["draft", "send"]

    local_target.complete_todo(todo_id)
    todo = local_target.get_todo(todo_id)
    assert todo.status == "completed"
    assert todo.completed_at is not None


def test_cancel_and_delete(local_target):
    todo_id = local_target.add_todo("Call plumber")
    local_target.cancel_todo(todo_id)
    assert local_target.get_todo(todo_id).status == "canceled"

    local_target.delete_todo(todo_id)
    with pytest.raises(TargetError):
        local_target.get_todo(todo_id)


def test_missing_todo_is_a_target_error(local_target):
    for call in (local_target.complete_todo, local_target.cancel_todo, local_target.delete_todo):
        with pytest.raises(TargetError):
            call("missing")


def test_project_lookup_by_title_or_id(local_target):
    project_id = local_target.add_project("Garden", area="Home")
    by_title = local_target.add_todo("Plant tomatoes", project="Garden")
    by_id = local_target.add_todo("Water", project=project_id)

    assert local_target.get_todo(by_title).project_id == project_id
    assert local_target.get_todo(by_id).project_id == project_id
    with pytest.raises(TargetError):
        local_target.add_todo("Orphan", project="Nowhere")


def test_blank_titles_are_rejected(local_target):
    with pytest.raises(TargetError):
        local_target.add_todo("  ")
    with pytest.raises(TargetError):
        local_target.add_project("")


def test_executor_against_local_target(queue, local_target):
    todo_id = local_target.add_todo("Existing")
    queue.enqueue(Operation.add_project("Errands"))
    queue.enqueue(Operation.add_todo("Buy stamps", project="Errands"))
    queue.enqueue(Operation.complete_todo(todo_id))

    result = SyncExecutor(local_target, queue, ExecutorConfig()).execute_all()

    assert result.all_succeeded()
    assert result.succeeded == 3
    assert local_target.get_todo(todo_id).status == "completed"
    titles = {todo.title for todo in local_target.list_todos()}
    assert titles == {"Existing", "Buy stamps"}
    assert queue.get_by_status(OperationStatus.COMPLETED) != []


def test_todo_created_after_project_in_same_batch_depends_on_order(queue, local_target):
    # creations share a priority, so they keep their queue order
    queue.enqueue(Operation.add_todo("Buy stamps", project="Errands"))
    queue.enqueue(Operation.add_project("Errands"))

    result = SyncExecutor(local_target, queue, ExecutorConfig()).execute_all()

    assert result.failed == 1
    assert result.results[0].error == "Project not found: Errands"

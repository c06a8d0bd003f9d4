# tests/test_tasks.py

from datetime import date

import pytest

from taskhub import realtime as topics
from taskhub.errors import InvalidInput, ItemNotFound, NotFound, OperationInProgress, PermissionDenied
from taskhub.stores import Stores
from taskhub.tasks.models import TaskStatus

GROCERIES = {
    "title": "Groceries",
    "type": "shopping",
    "shopping_items": [{"name": "milk", "quantity": 2}, {"name": "eggs", "quantity": 12}],
}


def only_task(stores: Stores):
    [task] = stores.tasks.personal_tasks()
    return task


def test_new_task_defaults(alice: Stores) -> None:
    task_id = alice.tasks.add_task({"title": "Water plants"})

    task = only_task(alice)
    assert task.id == task_id
    assert task.status == TaskStatus.NOT_STARTED
    assert task.completed is False
    assert task.privacy.value == "private"
    assert task.priority.value == "medium"
    assert task.shopping_items is None


def test_shopping_scenario(alice: Stores) -> None:
    task_id = alice.tasks.add_task(GROCERIES)
    milk, eggs = only_task(alice).shopping_items
    assert (milk.name, milk.quantity) == ("milk", 2)

    task = alice.tasks.toggle_shopping_item(task_id, milk.id, True)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.completed is False

    task = alice.tasks.toggle_shopping_item(task_id, eggs.id, True)
    assert task.status == TaskStatus.COMPLETED
    assert task.completed is True
    assert only_task(alice).status == TaskStatus.COMPLETED

    task = alice.tasks.toggle_shopping_item(task_id, milk.id, False)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.completed is False


def test_new_shopping_items_get_fresh_ids_and_start_unticked(alice: Stores) -> None:
    alice.tasks.add_task({
        "title": "Party",
        "type": "shopping",
        "shopping_items": [
            {"id": "same", "name": "chips", "completed": True},
            {"id": "same", "name": "soda"},
        ],
    })
    items = only_task(alice).shopping_items
    assert len({item.id for item in items}) == 2
    assert "same" not in {item.id for item in items}
    assert not any(item.completed for item in items)


def test_toggling_a_shopping_task_forces_every_item(alice: Stores) -> None:
    task_id = alice.tasks.add_task(GROCERIES)

    task = alice.tasks.toggle_task_completion(task_id, True)
    assert all(item.completed for item in task.shopping_items)
    assert task.status == TaskStatus.COMPLETED

    task = alice.tasks.toggle_task_completion(task_id, False)
    assert not any(item.completed for item in task.shopping_items)
    assert task.status == TaskStatus.NOT_STARTED
    assert task.completed is False


def test_uncompleting_reverts_to_previous_progress(alice: Stores) -> None:
    started = alice.tasks.add_task({"title": "Write report"})
    alice.tasks.update_task(started, {"status": "in_progress"})
    assert alice.tasks.toggle_task_completion(started, True).status == TaskStatus.COMPLETED
    assert alice.tasks.toggle_task_completion(started, False).status == TaskStatus.IN_PROGRESS

    untouched = alice.tasks.add_task({"title": "Call mum"})
    alice.tasks.toggle_task_completion(untouched, True)
    assert alice.tasks.toggle_task_completion(untouched, False).status == TaskStatus.NOT_STARTED


def test_status_update_keeps_completed_flag_in_sync(alice: Stores) -> None:
    task_id = alice.tasks.add_task({"title": "Laundry"})
    task = alice.tasks.update_task(task_id, {"status": "completed"})
    assert task.completed is True
    task = alice.tasks.update_task(task_id, {"status": "not_started"})
    assert task.completed is False


def test_shopping_status_cannot_be_set_by_hand(alice: Stores) -> None:
    task_id = alice.tasks.add_task(GROCERIES)
    with pytest.raises(InvalidInput):
        alice.tasks.update_task(task_id, {"status": "completed"})
    assert only_task(alice).status == TaskStatus.NOT_STARTED


def test_regular_tasks_cannot_carry_items(alice: Stores) -> None:
    with pytest.raises(InvalidInput):
        alice.tasks.add_task({"title": "Read", "shopping_items": [{"name": "book"}]})
    assert alice.tasks.error == "Only shopping tasks can have shopping items"


def test_update_keeps_item_ids_and_fills_missing_ones(alice: Stores) -> None:
    task_id = alice.tasks.add_task(GROCERIES)
    milk, _ = only_task(alice).shopping_items

    task = alice.tasks.update_task(task_id, {
        "shopping_items": [
            {"id": milk.id, "name": "oat milk", "quantity": 1, "completed": True},
            {"name": "bread"},
        ],
    })
    first, second = task.shopping_items
    assert first.id == milk.id
    assert first.name == "oat milk"
    assert second.id and second.id != milk.id
    assert task.status == TaskStatus.IN_PROGRESS


def test_duplicate_item_ids_on_update_are_rejected(alice: Stores) -> None:
    task_id = alice.tasks.add_task(GROCERIES)
    with pytest.raises(InvalidInput):
        alice.tasks.update_task(task_id, {
            "shopping_items": [{"id": "dup", "name": "a"}, {"id": "dup", "name": "b"}],
        })
    assert len(only_task(alice).shopping_items) == 2


def test_missing_shopping_item(alice: Stores) -> None:
    task_id = alice.tasks.add_task(GROCERIES)
    with pytest.raises(ItemNotFound):
        alice.tasks.toggle_shopping_item(task_id, "no-such-item", True)
    assert alice.tasks.error == "Shopping item not found"


def test_switching_to_regular_drops_items(alice: Stores) -> None:
    task_id = alice.tasks.add_task(GROCERIES)
    task = alice.tasks.update_task(task_id, {"type": "regular"})
    assert task.shopping_items is None
    assert task.type.value == "regular"


def test_private_and_public_personal_tasks(alice: Stores, bob: Stores) -> None:
    alice.tasks.add_task({"title": "Diary"})
    public_id = alice.tasks.add_task({"title": "Marathon training", "privacy": "public"})

    assert [t.id for t in bob.tasks.public_tasks()] == [public_id]
    assert bob.tasks.personal_tasks() == []

    with pytest.raises(PermissionDenied):
        bob.tasks.toggle_task_completion(public_id, True)
    with pytest.raises(PermissionDenied):
        bob.tasks.delete_task(public_id)


def test_personal_tasks_are_newest_first(alice: Stores) -> None:
    first = alice.tasks.add_task({"title": "first"})
    second = alice.tasks.add_task({"title": "second"})
    assert [t.id for t in alice.tasks.personal_tasks()] == [second, first]


def test_channel_tasks_are_shared_with_members(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")
    bob.channels.join_channel(channel_id)

    task_id = alice.tasks.add_task({"title": "Clean kitchen", "channel_id": channel_id})
    assert [t.id for t in bob.tasks.channel_tasks(channel_id)] == [task_id]

    # any member may tick it off
    task = bob.tasks.toggle_task_completion(task_id, True, channel_id=channel_id)
    assert task.completed is True
    assert alice.tasks.channel_tasks(channel_id)[0].completed is True

    # but only the creator or an admin may edit it
    with pytest.raises(PermissionDenied):
        bob.tasks.update_task(task_id, {"title": "Mine"}, channel_id=channel_id)
    with pytest.raises(PermissionDenied):
        bob.tasks.delete_task(task_id, channel_id=channel_id)

    bob_task = bob.tasks.add_task({"title": "Buy soap", "channel_id": channel_id})
    updated = alice.tasks.update_task(bob_task, {"priority": "high"}, channel_id=channel_id)
    assert updated.priority.value == "high"
    alice.tasks.delete_task(bob_task, channel_id=channel_id)
    assert [t.id for t in bob.tasks.channel_tasks(channel_id)] == [task_id]


def test_channel_tasks_are_scoped_to_their_channel(alice: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")
    task_id = alice.tasks.add_task({"title": "Clean kitchen", "channel_id": channel_id})

    with pytest.raises(NotFound):
        alice.tasks.delete_task(task_id)
    alice.tasks.delete_task(task_id, channel_id=channel_id)
    assert alice.tasks.channel_tasks(channel_id) == []


def test_non_members_cannot_add_or_read_channel_tasks(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")

    with pytest.raises(PermissionDenied):
        bob.tasks.add_task({"title": "Sneaky", "channel_id": channel_id})
    with pytest.raises(PermissionDenied):
        bob.tasks.get_tasks_by_channel(channel_id)
    assert alice.tasks.get_tasks_by_channel(channel_id) == []


def test_get_tasks_by_channel_is_newest_first(alice: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")
    older = alice.tasks.add_task({"title": "older", "channel_id": channel_id})
    newer = alice.tasks.add_task({"title": "newer", "channel_id": channel_id})
    assert [t.id for t in alice.tasks.get_tasks_by_channel(channel_id)] == [newer, older]


def test_leaving_a_channel_drops_its_partition(alice: Stores, bob: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")
    bob.channels.join_channel(channel_id)
    alice.tasks.add_task({"title": "Clean kitchen", "channel_id": channel_id})
    hub = alice.backend.realtime
    assert hub.listener_count(topics.channel_tasks(channel_id)) == 2

    bob.channels.leave_channel(channel_id)
    assert bob.tasks.channel_tasks(channel_id) == []
    assert bob.tasks.tasks == []
    assert hub.listener_count(topics.channel_tasks(channel_id)) == 1


def test_merged_view_and_summaries(alice: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")
    done = alice.tasks.add_task({"title": "Done", "due_date": "2026-05-01"})
    alice.tasks.toggle_task_completion(done, True)
    busy = alice.tasks.add_task({"title": "Busy", "due_date": "2026-05-01", "channel_id": channel_id})
    alice.tasks.update_task(busy, {"status": "in_progress"}, channel_id=channel_id)
    alice.tasks.add_task({"title": "Later", "due_date": "2026-06-01"})

    assert len(alice.tasks.tasks) == 3
    assert {t.title for t in alice.tasks.tasks_for_date(date(2026, 5, 1))} == {"Done", "Busy"}
    assert alice.tasks.status_summary() == {
        "not_started": 1,
        "in_progress": 1,
        "completed": 1,
        "total": 3,
        "active": 2,
    }


def test_duplicate_submission_is_refused(alice: Stores) -> None:
    outcome = []

    def resubmit(store) -> None:
        if outcome:
            return
        outcome.append("called")
        try:
            store.add_task({"title": "Pay rent"})
        except OperationInProgress:
            outcome[0] = "refused"

    alice.tasks.subscribe(resubmit)
    alice.tasks.add_task({"title": "Pay rent"})

    assert outcome == ["refused"]
    assert [t.title for t in alice.tasks.personal_tasks()] == ["Pay rent"]


def test_logout_tears_down_task_subscriptions(alice: Stores) -> None:
    channel_id = alice.channels.create_channel("Flat")
    alice.tasks.add_task({"title": "Clean", "channel_id": channel_id})
    alice.session.logout()

    assert alice.tasks.tasks == []
    assert alice.backend.realtime.listener_count(topics.PERSONAL_TASKS) == 0
    assert alice.backend.realtime.listener_count(topics.channel_tasks(channel_id)) == 0


def test_malformed_input_is_recorded_as_invalid(alice: Stores) -> None:
    with pytest.raises(InvalidInput):
        alice.tasks.add_task({"title": "Call mum", "due_time": "25:99"})
    assert alice.tasks.error.startswith("due_time:")
    assert alice.tasks.personal_tasks() == []


def test_empty_shopping_list_can_be_completed(alice: Stores) -> None:
    task_id = alice.tasks.add_task({"title": "List", "type": "shopping", "shopping_items": []})

    task = alice.tasks.toggle_task_completion(task_id, True)
    assert (task.completed, task.status) == (True, TaskStatus.COMPLETED)

    task = alice.tasks.toggle_task_completion(task_id, False)
    assert (task.completed, task.status) == (False, TaskStatus.NOT_STARTED)

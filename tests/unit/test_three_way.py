"""Tests for the three-way merge of todo lists and per-file maps."""

from dataclasses import replace

from tests.unit.fakes import ids, todo
from todosync.core.merge.three_way import (
    find_insertion_index,
    format_merge_summary,
    merge_files_data,
    merge_todos,
)
from todosync.models.conflict import ConflictKind, FileConflictKind


def test_merge_identical_lists_is_a_no_op() -> None:
    todos = [todo(1), todo(2)]
    result = merge_todos(todos, todos, todos)
    assert result.merged == todos
    assert result.conflicts == []


def test_merge_keeps_additions_from_both_sides() -> None:
    """The remote addition is slotted right after its remote predecessor."""
    base = [todo(1)]
    local = [todo(1), todo(2)]
    remote = [todo(1), todo(3)]

    result = merge_todos(base, local, remote)

    assert ids(result.merged) == [1, 3, 2]
    assert result.conflicts == []


def test_merge_takes_the_side_that_changed() -> None:
    base = [todo(1), todo(2)]
    local = [todo(1, "local edit"), todo(2)]
    remote = [todo(1), todo(2, completed=True)]

    result = merge_todos(base, local, remote)

    assert result.merged == [todo(1, "local edit"), todo(2, completed=True)]
    assert result.conflicts == []


def test_merge_same_change_on_both_sides_is_not_a_conflict() -> None:
    base = [todo(1)]
    both = [todo(1, "same")]
    result = merge_todos(base, both, both)
    assert result.merged == both
    assert result.conflicts == []


def test_merge_reports_edit_edit_conflict_and_leaves_it_out() -> None:
    base = [todo(1), todo(2)]
    local = [todo(1, "mine"), todo(2)]
    remote = [todo(1, "theirs"), todo(2)]

    result = merge_todos(base, local, remote)

    assert ids(result.merged) == [2]
    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.todo_id == 1
    assert conflict.kind is ConflictKind.EDIT_EDIT
    assert conflict.base == todo(1)
    assert conflict.local == todo(1, "mine")
    assert conflict.remote == todo(1, "theirs")


def test_merge_unchanged_deletion_wins_silently() -> None:
    base = [todo(1), todo(2)]

    deleted_remotely = merge_todos(base, base, [todo(2)])
    deleted_locally = merge_todos(base, [todo(2)], base)

    assert ids(deleted_remotely.merged) == [2]
    assert ids(deleted_locally.merged) == [2]
    assert deleted_remotely.conflicts == deleted_locally.conflicts == []


def test_merge_edit_against_deletion_is_a_conflict() -> None:
    base = [todo(1)]

    local_edit = merge_todos(base, [todo(1, "edited")], [])
    remote_edit = merge_todos(base, [], [todo(1, "edited")])

    assert local_edit.conflicts[0].kind is ConflictKind.EDIT_DELETE
    assert local_edit.conflicts[0].remote is None
    assert remote_edit.conflicts[0].kind is ConflictKind.DELETE_EDIT
    assert remote_edit.conflicts[0].local is None
    assert local_edit.merged == remote_edit.merged == []


def test_merge_same_id_added_differently_is_an_id_collision() -> None:
    result = merge_todos([], [todo(5, "a")], [todo(5, "b")])
    assert result.merged == []
    assert result.conflicts[0].kind is ConflictKind.ID_COLLISION
    assert result.conflicts[0].base is None


def test_merge_same_id_added_identically_is_kept_once() -> None:
    result = merge_todos([], [todo(5)], [todo(5)])
    assert result.merged == [todo(5)]
    assert result.conflicts == []


def test_merge_follows_local_order_and_slots_remote_additions() -> None:
    """Local reorder wins; the remote addition goes after its remote predecessor."""
    base = [todo(1), todo(2)]
    local = [todo(2), todo(1)]
    remote = [todo(1), todo(2), todo(3)]

    result = merge_todos(base, local, remote)

    assert ids(result.merged) == [2, 3, 1]


def test_merge_remote_addition_at_front_stays_in_front() -> None:
    base = [todo(1), todo(2)]
    remote = [todo(9), todo(1), todo(2)]

    result = merge_todos(base, base, remote)

    assert ids(result.merged) == [9, 1, 2]


def test_merge_consecutive_remote_additions_keep_their_order() -> None:
    base = [todo(1)]
    remote = [todo(1), todo(2), todo(3)]

    result = merge_todos(base, [todo(1), todo(4)], remote)

    assert ids(result.merged) == [1, 2, 3, 4]


def test_find_insertion_index_without_placed_neighbours_appends() -> None:
    merged = [todo(1), todo(2)]
    remote = [todo(7)]
    assert find_insertion_index(merged, remote, 0, {1, 2}) == 2


def test_find_insertion_index_never_passes_next_neighbour() -> None:
    # Remote neighbours 3 (before) and 1 (after) are placed in the opposite order.
    merged = [todo(1), todo(3)]
    remote = [todo(3), todo(5), todo(1)]
    assert find_insertion_index(merged, remote, 1, {1, 3}) == 0


def test_merge_files_data_merges_each_path_as_a_whole() -> None:
    base = {"a.py": [todo(1)], "b.py": [todo(2)]}
    local = {"a.py": [todo(1, "local")], "b.py": [todo(2)]}
    remote = {"a.py": [todo(1)], "c.py": [todo(3)]}

    result = merge_files_data(base, local, remote)

    assert result.merged == {"a.py": [todo(1, "local")], "c.py": [todo(3)]}
    assert result.conflicts == []


def test_merge_files_data_reports_collection_conflicts() -> None:
    base = {"a.py": [todo(1)], "b.py": [todo(2)]}
    local = {"a.py": [todo(1, "local")], "b.py": [todo(2, "local")], "new.py": [todo(4)]}
    remote = {"a.py": [todo(1, "remote")], "new.py": [todo(5)]}

    result = merge_files_data(base, local, remote)

    kinds = {c.path: c.kind for c in result.conflicts}
    assert kinds == {
        "a.py": FileConflictKind.EDIT_EDIT,
        "b.py": FileConflictKind.EDIT_DELETE,
        "new.py": FileConflictKind.ADDED_BOTH,
    }
    assert result.merged == {}
    b_conflict = next(c for c in result.conflicts if c.path == "b.py")
    assert b_conflict.local == (todo(2, "local"),)
    assert b_conflict.remote is None


def test_merge_files_data_treats_none_as_empty() -> None:
    result = merge_files_data(None, {"x.py": [todo(1)]}, None)
    assert result.merged == {"x.py": [todo(1)]}


def test_merge_files_data_result_is_sorted_by_path() -> None:
    result = merge_files_data({}, {"z.py": [todo(1)]}, {"a.py": [todo(2)]})
    assert list(result.merged) == ["a.py", "z.py"]


def test_format_merge_summary_counts_changes() -> None:
    base = [todo(1), todo(2), todo(3)]
    merged = [replace(todo(1), text="changed"), todo(3), todo(4), todo(5)]
    assert format_merge_summary(merged, base) == "2 added, 1 modified, 1 deleted"


def test_format_merge_summary_without_changes() -> None:
    assert format_merge_summary([todo(1)], [todo(1)]) == "No changes"

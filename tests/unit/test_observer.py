"""Unit tests for deep and shallow change observation."""

import copy
import json
import pickle
import threading

import pytest

from reactive_file.observer import (
    ChangeType,
    ObservedDict,
    ObservedList,
    is_observed,
    observe,
    rebind,
    to_plain,
)


@pytest.fixture
def events():
    return []


@pytest.mark.unit
class TestReadsPassThrough:
    """Observed trees read exactly like the plain data they wrap."""

    def test_observed_tree_equals_original(self, events):
        data = {"a": 1, "nested": {"b": [1, 2, {"c": 3}]}}
        tree = observe(data, deep=True, on_change=events.append)

        assert tree == data
        assert isinstance(tree, dict)
        assert isinstance(tree["nested"]["b"], list)
        assert json.loads(json.dumps(tree)) == data

    def test_reads_never_notify(self, events):
        tree = observe({"a": {"b": [1, 2]}}, deep=True, on_change=events.append)

        _ = tree["a"]["b"][0]
        _ = tree.get("missing")
        _ = list(tree.items())
        _ = len(tree["a"]["b"])
        _ = "a" in tree
        _ = tree.copy()

        assert events == []

    def test_copies_are_plain(self, events):
        tree = observe({"a": {"b": [1]}}, deep=True, on_change=events.append)

        shallow = copy.copy(tree)
        deep = copy.deepcopy(tree)
        restored = pickle.loads(pickle.dumps(tree))

        assert type(shallow) is dict
        assert type(deep) is dict and type(deep["a"]) is dict
        assert type(deep["a"]["b"]) is list
        assert restored == {"a": {"b": [1]}}
        deep["a"]["b"].append(2)
        assert events == []

    def test_rejects_scalar_root(self, events):
        with pytest.raises(TypeError):
            observe(42, deep=True, on_change=events.append)


@pytest.mark.unit
class TestDictMutations:
    """Each dict mutation notifies exactly once, after it took effect."""

    def test_set_item_notifies_after_mutation(self):
        seen = []
        tree = observe({"a": 1}, deep=True, on_change=lambda e: seen.append(dict(e.container)))

        tree["a"] = 2

        assert seen == [{"a": 2}]

    def test_set_item_event_details(self, events):
        tree = observe({"a": 1}, deep=True, on_change=events.append)

        tree["a"] = 2

        assert len(events) == 1
        event = events[0]
        assert event.change_type == ChangeType.SET
        assert event.key == "a"
        assert event.old_value == 1
        assert event.new_value == 2
        assert event.container is tree

    def test_delete_notifies(self, events):
        tree = observe({"a": 1, "b": 2}, deep=True, on_change=events.append)

        del tree["a"]

        assert tree == {"b": 2}
        assert [e.change_type for e in events] == [ChangeType.DELETE]

    def test_delete_missing_key_raises_without_notifying(self, events):
        tree = observe({}, deep=True, on_change=events.append)

        with pytest.raises(KeyError):
            del tree["missing"]
        assert events == []

    def test_pop_and_popitem(self, events):
        tree = observe({"a": 1, "b": 2}, deep=True, on_change=events.append)

        assert tree.pop("a") == 1
        assert tree.pop("missing", "default") == "default"
        assert tree.popitem() == ("b", 2)

        assert tree == {}
        assert len(events) == 2

    def test_pop_missing_without_default_raises(self, events):
        tree = observe({}, deep=True, on_change=events.append)

        with pytest.raises(KeyError):
            tree.pop("missing")
        assert events == []

    def test_update_notifies_once(self, events):
        tree = observe({}, deep=True, on_change=events.append)

        tree.update({"a": 1, "b": {"c": 2}}, d=3)

        assert tree == {"a": 1, "b": {"c": 2}, "d": 3}
        assert len(events) == 1
        assert is_observed(tree["b"])

    def test_empty_update_does_not_notify(self, events):
        tree = observe({"a": 1}, deep=True, on_change=events.append)

        tree.update()
        tree.update({})
        tree |= {}

        assert tree == {"a": 1}
        assert events == []

    def test_assigning_equal_value_still_notifies(self, events):
        tree = observe({"a": 1}, deep=True, on_change=events.append)

        tree["a"] = 1
        tree["a"] = 1

        assert len(events) == 2

    def test_in_place_union(self, events):
        tree = observe({"a": 1}, deep=True, on_change=events.append)

        tree |= {"b": 2}

        assert isinstance(tree, ObservedDict)
        assert tree == {"a": 1, "b": 2}
        assert len(events) == 1

    def test_setdefault_only_notifies_on_insert(self, events):
        tree = observe({"a": 1}, deep=True, on_change=events.append)

        assert tree.setdefault("a", 5) == 1
        assert events == []

        inserted = tree.setdefault("b", {})
        assert is_observed(inserted)
        assert len(events) == 1

    def test_clear_notifies(self, events):
        tree = observe({"a": 1}, deep=True, on_change=events.append)

        tree.clear()

        assert tree == {}
        assert [e.change_type for e in events] == [ChangeType.CLEAR]


@pytest.mark.unit
class TestListMutations:
    """Each list mutation notifies exactly once."""

    @pytest.mark.parametrize(
        "mutate, expected",
        [
            (lambda l: l.append(4), [1, 2, 3, 4]),
            (lambda l: l.extend([4, 5]), [1, 2, 3, 4, 5]),
            (lambda l: l.insert(0, 0), [0, 1, 2, 3]),
            (lambda l: l.pop(), [1, 2]),
            (lambda l: l.pop(0), [2, 3]),
            (lambda l: l.remove(2), [1, 3]),
            (lambda l: l.clear(), []),
            (lambda l: l.sort(reverse=True), [3, 2, 1]),
            (lambda l: l.reverse(), [3, 2, 1]),
            (lambda l: l.__setitem__(0, 9), [9, 2, 3]),
            (lambda l: l.__setitem__(slice(0, 2), [7, 8, 9]), [7, 8, 9, 3]),
            (lambda l: l.__delitem__(1), [1, 3]),
            (lambda l: l.__delitem__(slice(0, 2)), [3]),
        ],
    )
    def test_mutation_notifies_once(self, events, mutate, expected):
        tree = observe({"items": [1, 2, 3]}, deep=True, on_change=events.append)

        mutate(tree["items"])

        assert tree["items"] == expected
        assert len(events) == 1

    def test_augmented_assignment_keeps_node(self, events):
        tree = observe([1], deep=True, on_change=events.append)

        tree += [2, 3]
        tree *= 2

        assert isinstance(tree, ObservedList)
        assert tree == [1, 2, 3, 1, 2, 3]
        assert len(events) == 2

    def test_augmented_assignment_through_parent_notifies_once(self, events):
        tree = observe({"items": [1], "rows": [[1]]}, deep=True, on_change=events.append)
        items = tree["items"]

        tree["items"] += [2]
        assert tree["items"] is items
        assert tree["items"] == [1, 2]
        assert len(events) == 1

        tree["rows"][0] += [2]
        assert tree["rows"] == [[1, 2]]
        assert len(events) == 2

    def test_storing_a_node_under_a_new_key_notifies(self, events):
        tree = observe({"a": {"x": 1}}, deep=True, on_change=events.append)

        tree["b"] = tree["a"]

        assert tree["b"] is tree["a"]
        assert len(events) == 1

    def test_remove_missing_value_raises_without_notifying(self, events):
        tree = observe([1], deep=True, on_change=events.append)

        with pytest.raises(ValueError):
            tree.remove(5)
        assert events == []

    def test_appended_containers_are_observed(self, events):
        tree = observe([], deep=True, on_change=events.append)

        tree.append({"a": 1})
        tree.extend([[1], {"b": 2}])
        tree[1:2] = [[9]]

        assert all(is_observed(item) for item in tree)
        tree[0]["a"] = 2
        tree[1].append(10)
        assert len(events) == 5


@pytest.mark.unit
class TestDeepObservation:
    """Containers attached after the initial wrap are observed too."""

    def test_existing_nested_containers_notify(self, events):
        tree = observe({"a": {"b": {"c": [1]}}}, deep=True, on_change=events.append)

        tree["a"]["b"]["c"].append(2)

        assert len(events) == 1

    def test_newly_attached_object_is_observed(self, events):
        tree = observe({}, deep=True, on_change=events.append)

        tree["nested"] = {"x": 1}
        tree["nested"]["x"] = 2

        assert tree == {"nested": {"x": 2}}
        assert len(events) == 2

    def test_original_object_is_not_observed(self, events):
        original = {"x": 1}
        tree = observe({}, deep=True, on_change=events.append)

        tree["nested"] = original
        original["x"] = 2

        assert tree["nested"]["x"] == 1
        assert len(events) == 1

    def test_cyclic_input_is_wrapped_once(self, events):
        data = {"name": "loop"}
        data["self"] = data

        tree = observe(data, deep=True, on_change=events.append)

        assert tree["self"] is tree
        tree["self"]["name"] = "still loop"
        assert tree["name"] == "still loop"
        assert len(events) == 1

    def test_aliasing_within_one_tree_is_preserved(self, events):
        tree = observe({"a": {"x": 1}}, deep=True, on_change=events.append)

        tree["b"] = tree["a"]

        assert tree["b"] is tree["a"]
        tree["b"]["x"] = 2
        assert tree["a"]["x"] == 2
        assert len(events) == 2

    def test_node_from_another_tree_is_copied(self):
        first_events, second_events = [], []
        first = observe({"shared": {"x": 1}}, deep=True, on_change=first_events.append)
        second = observe({}, deep=True, on_change=second_events.append)

        second["copy"] = first["shared"]
        second["copy"]["x"] = 2
        first["shared"]["x"] = 3

        assert second["copy"] is not first["shared"]
        assert second["copy"]["x"] == 2
        assert first["shared"]["x"] == 3
        assert len(first_events) == 1
        assert len(second_events) == 2


@pytest.mark.unit
class TestShallowObservation:
    """Shallow trees only notify for the root's own keys."""

    def test_nested_mutation_does_not_notify(self, events):
        tree = observe({"nested": {"x": 1}}, deep=False, on_change=events.append)

        tree["nested"]["x"] = 2

        assert events == []
        assert not is_observed(tree["nested"])

    def test_reassigning_top_level_key_notifies(self, events):
        tree = observe({"nested": {"x": 1}}, deep=False, on_change=events.append)

        tree["nested"] = {"x": 2}

        assert len(events) == 1
        assert not is_observed(tree["nested"])

    def test_observed_values_are_stored_plain(self, events):
        other = observe({"x": {"y": 1}}, deep=True, on_change=lambda e: None)
        tree = observe({}, deep=False, on_change=events.append)

        tree["copied"] = other["x"]

        assert type(tree["copied"]) is dict
        assert tree["copied"] == {"y": 1}


@pytest.mark.unit
class TestRebind:
    """Re-arming replaces the previous observation."""

    def test_rebind_keeps_root_identity(self, events):
        tree = observe({"a": {"b": 1}}, deep=True, on_change=lambda e: None)

        rearmed = rebind(tree, deep=True, on_change=events.append)

        assert rearmed is tree
        tree["a"]["b"] = 2
        assert len(events) == 1

    def test_rebind_twice_does_not_double_fire(self, events):
        tree = observe({"a": 1}, deep=True, on_change=events.append)

        rebind(tree, deep=True, on_change=events.append)
        rebind(tree, deep=True, on_change=events.append)
        tree["a"] = 2

        assert len(events) == 1

    def test_rebind_silences_detached_nodes(self, events):
        tree = observe({"a": {"b": 1}}, deep=True, on_change=events.append)
        detached = tree.pop("a")
        events.clear()

        rebind(tree, deep=True, on_change=events.append)
        detached["b"] = 2

        assert events == []

    def test_rebind_wraps_containers_added_behind_the_observer(self, events):
        tree = observe({}, deep=True, on_change=events.append)
        dict.__setitem__(tree, "hidden", {"x": [1]})

        rebind(tree, deep=True, on_change=events.append)
        tree["hidden"]["x"].append(2)

        assert is_observed(tree["hidden"])
        assert len(events) == 1

    def test_rebind_plain_root_observes_it(self, events):
        tree = rebind({"a": 1}, deep=True, on_change=events.append)

        tree["a"] = 2

        assert is_observed(tree)
        assert len(events) == 1

    def test_rebind_copies_root_of_another_owner(self, events):
        first_events = []
        first = observe(
            {"a": {"b": 1}}, deep=True, on_change=first_events.append, owner="first"
        )

        second = rebind(first, deep=True, on_change=events.append, owner="second")
        first["a"]["b"] = 2
        second["a"]["b"] = 3

        assert second is not first
        assert second["a"] is not first["a"]
        assert first == {"a": {"b": 2}}
        assert second == {"a": {"b": 3}}
        assert len(first_events) == 1
        assert len(events) == 1

    def test_rebind_shallow_copy_of_another_owner(self, events):
        first = observe({"a": {"b": 1}}, deep=True, on_change=lambda e: None, owner="first")

        second = rebind(first, deep=False, on_change=events.append, owner="second")

        assert second is not first
        assert not is_observed(second["a"])
        assert first._binding.active

    def test_rebind_takes_over_root_of_same_owner(self, events):
        tree = observe({"a": 1}, deep=True, on_change=lambda e: None, owner="doc")

        assert rebind(tree, deep=True, on_change=events.append, owner="doc") is tree
        tree["a"] = 2
        assert len(events) == 1

    def test_rebind_takes_over_silenced_root(self, events):
        tree = observe({"a": 1}, deep=True, on_change=lambda e: None, owner="first")
        tree._binding.deactivate()

        assert rebind(tree, deep=True, on_change=events.append, owner="second") is tree
        tree["a"] = 2
        assert len(events) == 1


@pytest.mark.unit
class TestLocking:
    """Mutations hold the supplied lock while notifying."""

    def test_callback_runs_under_lock(self):
        lock = threading.RLock()
        held = []

        def on_change(event):
            # A different thread could not acquire the lock right now
            result = []
            thread = threading.Thread(target=lambda: result.append(lock.acquire(blocking=False)))
            thread.start()
            thread.join()
            held.append(not result[0])

        tree = observe({}, deep=True, on_change=on_change, lock=lock)
        tree["a"] = 1

        assert held == [True]


@pytest.mark.unit
class TestToPlain:
    """Snapshots are plain deep copies."""

    def test_converts_nodes_to_builtin_types(self):
        tree = observe({"a": [{"b": 1}]}, deep=True, on_change=lambda e: None)

        plain = to_plain(tree)

        assert plain == {"a": [{"b": 1}]}
        assert type(plain) is dict
        assert type(plain["a"]) is list
        assert type(plain["a"][0]) is dict

    def test_shared_subtrees_are_allowed(self):
        shared = {"x": 1}

        assert to_plain({"a": shared, "b": shared}) == {"a": {"x": 1}, "b": {"x": 1}}

    def test_cycles_raise_value_error(self):
        data = {}
        data["self"] = data

        with pytest.raises(ValueError):
            to_plain(data)

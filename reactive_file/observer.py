"""
Change Observer - deep mutation tracking for dict/list trees.
=============================================================

observe() turns a plain tree of dicts and lists into ObservedDict and
ObservedList nodes. They are real dict/list subclasses, so every read
(indexing, iteration, len, ==, json.dumps) behaves exactly as before, while
every mutation calls back into a shared Binding once it has taken effect.

    >>> events = []
    >>> tree = observe({"a": {"b": 1}}, deep=True, on_change=events.append)
    >>> tree["a"]["b"] = 2
    >>> tree["new"] = {"x": 1}      # wrapped on the way in
    >>> tree["new"]["x"] = 2        # so this notifies too
    >>> len(events)
    3

Deep vs shallow:
    deep=True wraps every dict/list reachable from the root, and wraps any
    container assigned later as part of that assignment. deep=False wraps the
    root only; nested containers are stored untouched and never notify.

Ownership:
    Every node points to exactly one Binding. A node that already belongs to
    the binding it is assigned into is stored as-is (aliasing inside one
    tree is fine). A node owned by another binding is copied, so the other
    tree keeps observing its own objects. rebind() moves a whole tree of the
    same owner to a new binding and silences the old one, so re-arming never
    double-fires; a root still observed by another owner is copied instead.
    Storing a node back where it already sits (`tree["k"] += [1]`) is not a
    second change.

Thread Safety:
    Each mutation and its notification run while holding the binding's
    RLock. Snapshots taken with the same lock see a consistent tree.
"""

import contextlib
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Set

_MISSING = object()


class ChangeType(Enum):
    """Kinds of mutation reported by observed containers."""

    SET = "set"
    DELETE = "delete"
    INSERT = "insert"
    CLEAR = "clear"
    REORDER = "reorder"


@dataclass
class ChangeEvent:
    """
    One logical mutation of an observed container.

    Attributes:
        container: The node that was mutated
        key: Dict key, list index or slice; None for whole-container changes
        change_type: Kind of mutation
        old_value: Replaced or removed value, if any
        new_value: Stored value, if any (already wrapped in deep mode)
    """

    container: Any
    key: Any
    change_type: ChangeType
    old_value: Any = None
    new_value: Any = None

    def __repr__(self):
        if self.change_type == ChangeType.SET:
            return f"ChangeEvent(SET {self.key!r}: {self.old_value!r} -> {self.new_value!r})"
        elif self.change_type == ChangeType.DELETE:
            return f"ChangeEvent(DELETE {self.key!r}: {self.old_value!r})"
        elif self.change_type == ChangeType.INSERT:
            return f"ChangeEvent(INSERT {self.key!r}: {self.new_value!r})"
        else:
            return f"ChangeEvent({self.change_type.name})"


ChangeCallback = Callable[[ChangeEvent], None]


class Binding:
    """
    Notification sink shared by every node of one observed tree.

    Holds the callback, the deep flag, the lock guarding each
    mutation+notify step and the owner (the document it belongs to, if any).
    A deactivated binding stays attached to stray nodes but no longer
    forwards anything.
    """

    def __init__(
        self,
        on_change: ChangeCallback,
        deep: bool = True,
        lock: Optional[threading.RLock] = None,
        owner: Any = None,
    ):
        self.on_change = on_change
        self.deep = deep
        self.lock = lock if lock is not None else threading.RLock()
        self.owner = owner
        self.active = True

    def notify(self, event: ChangeEvent) -> None:
        if self.active:
            self.on_change(event)

    def deactivate(self) -> None:
        self.active = False

    def adopt(self, value: Any) -> Any:
        """Prepare a value for storage inside a node owned by this binding."""
        if self.deep:
            return _wrap(value, self, {})
        if is_observed(value):
            # Shallow trees keep nested values plain
            return to_plain(value)
        return value


def _same_node(node: Any, old: Any, new: Any) -> bool:
    """True if new is the observed node already stored where it is assigned."""
    return (
        new is old
        and node._binding is not None
        and is_observed(new)
        and new._binding is node._binding
    )


def _guard(node: Any):
    binding = node._binding
    if binding is None:
        return contextlib.nullcontext()
    return binding.lock


class ObservedDict(dict):
    """dict that reports every mutation to its Binding."""

    _binding: Optional[Binding] = None

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._binding = None

    def _adopt(self, value: Any) -> Any:
        return value if self._binding is None else self._binding.adopt(value)

    def _notify(self, change_type: ChangeType, key=None, old=None, new=None) -> None:
        if self._binding is not None:
            self._binding.notify(ChangeEvent(self, key, change_type, old, new))

    def __setitem__(self, key, value):
        with _guard(self):
            old = self.get(key, _MISSING)
            value = self._adopt(value)
            if _same_node(self, old, value):
                # `node[key] += ...` stores the node it just mutated
                return
            super().__setitem__(key, value)
            self._notify(ChangeType.SET, key, None if old is _MISSING else old, value)

    def __delitem__(self, key):
        with _guard(self):
            old = self[key]
            super().__delitem__(key)
            self._notify(ChangeType.DELETE, key, old)

    def pop(self, key, default=_MISSING):
        with _guard(self):
            if key not in self:
                if default is _MISSING:
                    raise KeyError(key)
                return default
            old = super().pop(key)
            self._notify(ChangeType.DELETE, key, old)
            return old

    def popitem(self):
        with _guard(self):
            key, old = super().popitem()
            self._notify(ChangeType.DELETE, key, old)
            return key, old

    def clear(self):
        with _guard(self):
            super().clear()
            self._notify(ChangeType.CLEAR)

    def update(self, *args, **kwargs):
        with _guard(self):
            items = {key: self._adopt(value) for key, value in dict(*args, **kwargs).items()}
            if not items:
                return
            super().update(items)
            self._notify(ChangeType.SET, None, None, items)

    def setdefault(self, key, default=None):
        with _guard(self):
            if key not in self:
                self[key] = default
            return self[key]

    def __ior__(self, other):
        self.update(other)
        return self

    def __reduce_ex__(self, protocol):
        # Copies and pickles come out as plain dicts
        return (dict, (dict(self),))


class ObservedList(list):
    """list that reports every mutation to its Binding."""

    _binding: Optional[Binding] = None

    def __init__(self, *args):
        super().__init__(*args)
        self._binding = None

    def _adopt(self, value: Any) -> Any:
        return value if self._binding is None else self._binding.adopt(value)

    def _notify(self, change_type: ChangeType, key=None, old=None, new=None) -> None:
        if self._binding is not None:
            self._binding.notify(ChangeEvent(self, key, change_type, old, new))

    def __setitem__(self, index, value):
        with _guard(self):
            old = self[index]
            if isinstance(index, slice):
                value = [self._adopt(item) for item in value]
            else:
                value = self._adopt(value)
                if _same_node(self, old, value):
                    return
            super().__setitem__(index, value)
            self._notify(ChangeType.SET, index, old, value)

    def __delitem__(self, index):
        with _guard(self):
            old = self[index]
            super().__delitem__(index)
            self._notify(ChangeType.DELETE, index, old)

    def append(self, value):
        with _guard(self):
            value = self._adopt(value)
            super().append(value)
            self._notify(ChangeType.INSERT, len(self) - 1, None, value)

    def extend(self, values: Iterable[Any]):
        with _guard(self):
            start = len(self)
            items = [self._adopt(item) for item in values]
            super().extend(items)
            self._notify(ChangeType.INSERT, slice(start, len(self)), None, items)

    def insert(self, index, value):
        with _guard(self):
            value = self._adopt(value)
            super().insert(index, value)
            self._notify(ChangeType.INSERT, index, None, value)

    def pop(self, index=-1):
        with _guard(self):
            old = super().pop(index)
            self._notify(ChangeType.DELETE, index, old)
            return old

    def remove(self, value):
        with _guard(self):
            index = self.index(value)
            old = self[index]
            super().__delitem__(index)
            self._notify(ChangeType.DELETE, index, old)

    def clear(self):
        with _guard(self):
            super().clear()
            self._notify(ChangeType.CLEAR)

    def sort(self, *, key=None, reverse=False):
        with _guard(self):
            super().sort(key=key, reverse=reverse)
            self._notify(ChangeType.REORDER)

    def reverse(self):
        with _guard(self):
            super().reverse()
            self._notify(ChangeType.REORDER)

    def __iadd__(self, other):
        self.extend(other)
        return self

    def __imul__(self, count):
        with _guard(self):
            super().__imul__(count)
            self._notify(ChangeType.INSERT, None, None, count)
            return self

    def __reduce_ex__(self, protocol):
        return (list, (list(self),))


def is_observed(value: Any) -> bool:
    """Return True if value is an observed container node."""
    return isinstance(value, (ObservedDict, ObservedList))


def _wrap(value: Any, binding: Binding, memo: Dict[int, Any]) -> Any:
    """
    Deep-wrap value into nodes owned by binding.

    memo maps id(original container) -> node so cyclic and shared inputs
    are wrapped once.
    """
    if is_observed(value) and value._binding is binding:
        return value
    if not isinstance(value, (dict, list)):
        return value
    if id(value) in memo:
        return memo[id(value)]

    if isinstance(value, dict):
        node = ObservedDict()
        memo[id(value)] = node
        for key, item in value.items():
            dict.__setitem__(node, key, _wrap(item, binding, memo))
    else:
        node = ObservedList()
        memo[id(value)] = node
        list.extend(node, [_wrap(item, binding, memo) for item in value])
    node._binding = binding
    return node


def _wrap_shallow(value: Any, binding: Binding) -> Any:
    if isinstance(value, dict):
        node = ObservedDict()
        dict.update(node, {key: binding.adopt(item) for key, item in value.items()})
    else:
        node = ObservedList()
        list.extend(node, [binding.adopt(item) for item in value])
    node._binding = binding
    return node


def observe(
    root: Any,
    deep: bool,
    on_change: ChangeCallback,
    lock: Optional[threading.RLock] = None,
    owner: Any = None,
) -> Any:
    """
    Wrap root so mutations call on_change(event).

    Args:
        root: A dict or list
        deep: Observe nested containers, including ones attached later
        on_change: Called synchronously after each mutation took effect
        lock: Lock held for each mutation+notify step (a new RLock if None)
        owner: Identifies who observes the tree; rebind() only takes over
            nodes of the same owner

    Returns:
        The observed root, an ObservedDict or ObservedList

    Raises:
        TypeError: If root is not a dict or list
    """
    if not isinstance(root, (dict, list)):
        raise TypeError(f"Can only observe dicts and lists, got {type(root).__name__}")

    binding = Binding(on_change, deep, lock, owner)
    with binding.lock:
        if deep:
            return _wrap(root, binding, {})
        return _wrap_shallow(root, binding)


def _retarget(node: Any, binding: Binding, seen: Set[int]) -> None:
    seen.add(id(node))
    node._binding = binding
    if not binding.deep:
        return

    entries = node.items() if isinstance(node, dict) else enumerate(node)
    for key, item in list(entries):
        if is_observed(item):
            if id(item) not in seen:
                _retarget(item, binding, seen)
        elif isinstance(item, (dict, list)):
            wrapped = _wrap(item, binding, {})
            if isinstance(node, dict):
                dict.__setitem__(node, key, wrapped)
            else:
                list.__setitem__(node, key, wrapped)


def rebind(
    root: Any,
    deep: bool,
    on_change: ChangeCallback,
    lock: Optional[threading.RLock] = None,
    owner: Any = None,
) -> Any:
    """
    Re-arm observation of root under a fresh Binding.

    An observed root of the same owner keeps its identity: every reachable
    node is pointed at the new binding and plain containers found on the way
    are wrapped. The previous binding is deactivated so stray nodes cannot
    fire twice. A root still observed by another owner is left alone and a
    fresh copy is observed instead. A plain root is simply observed.
    """
    previous = root._binding if is_observed(root) else None
    if not is_observed(root) or (
        previous is not None and previous.active and previous.owner is not owner
    ):
        return observe(root, deep, on_change, lock, owner)

    binding = Binding(on_change, deep, lock, owner)
    with binding.lock:
        if previous is not None and previous is not binding:
            previous.deactivate()
        _retarget(root, binding, set())
    return root


def to_plain(value: Any, _path: Optional[Set[int]] = None) -> Any:
    """
    Deep-copy a tree into plain dicts and lists.

    Shared sub-trees are copied once per reference. Raises ValueError on
    cyclic structures, which no text format can represent.
    """
    if not isinstance(value, (dict, list)):
        return value

    path = _path if _path is not None else set()
    if id(value) in path:
        raise ValueError("Cyclic structure cannot be serialized")
    path.add(id(value))
    try:
        if isinstance(value, dict):
            return {key: to_plain(item, path) for key, item in value.items()}
        return [to_plain(item, path) for item in value]
    finally:
        path.discard(id(value))

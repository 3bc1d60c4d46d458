"""Explicit field bindings between application objects and sheet records.

A :class:`FieldRegistry` is built once per record type and lists, for each
column title, how to read the value from an object and how to put it back::

    registry = (
        FieldRegistry()
        .field("Name", "name")
        .field("Age", "age", dump=str, load=int)
    )

    @registry.getter("Photo")
    def _photo(item):
        return FileData.from_path(item.photo_path)

Records produced by :meth:`FieldRegistry.to_record` feed
:func:`sheetsync.sync.upsert`; :meth:`FieldRegistry.from_record` turns the
fields of a read :class:`~sheetsync.sync.Record` back into objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

Getter = Callable[[Any], Any]
Setter = Callable[[Any, Any], None]


@dataclass(frozen=True)
class FieldBinding:
    name: str
    getter: Optional[Getter] = None
    setter: Optional[Setter] = None


class FieldRegistry:
    """Ordered mapping of field name to getter/setter pair."""

    def __init__(self) -> None:
        self._bindings: Dict[str, FieldBinding] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._bindings

    def __iter__(self):
        return iter(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)

    @property
    def names(self) -> List[str]:
        return list(self._bindings)

    def bind(
        self,
        name: str,
        getter: Optional[Getter] = None,
        setter: Optional[Setter] = None,
    ) -> "FieldRegistry":
        current = self._bindings.get(name, FieldBinding(name))
        self._bindings[name] = FieldBinding(
            name,
            getter if getter is not None else current.getter,
            setter if setter is not None else current.setter,
        )
        return self

    def field(
        self,
        name: str,
        attribute: Optional[str] = None,
        *,
        dump: Optional[Callable[[Any], Any]] = None,
        load: Optional[Callable[[Any], Any]] = None,
    ) -> "FieldRegistry":
        """Bind ``name`` to an attribute, optionally converting on the way."""

        attr = attribute or name

        def _get(obj: Any) -> Any:
            value = getattr(obj, attr)
            if dump is not None and value is not None:
                return dump(value)
            return value

        def _set(obj: Any, value: Any) -> None:
            if load is not None and value is not None:
                value = load(value)
            setattr(obj, attr, value)

        return self.bind(name, _get, _set)

    def getter(self, name: str) -> Callable[[Getter], Getter]:
        def decorator(func: Getter) -> Getter:
            self.bind(name, getter=func)
            return func

        return decorator

    def setter(self, name: str) -> Callable[[Setter], Setter]:
        def decorator(func: Setter) -> Setter:
            self.bind(name, setter=func)
            return func

        return decorator

    def to_record(self, obj: Any) -> Dict[str, Any]:
        return {
            binding.name: binding.getter(obj)
            for binding in self._bindings.values()
            if binding.getter is not None
        }

    def to_records(self, objects: Iterable[Any]) -> List[Dict[str, Any]]:
        return [self.to_record(obj) for obj in objects]

    def from_record(self, fields: Mapping[str, Any], factory: Callable[[], Any]) -> Any:
        """Create an object with ``factory`` and apply every bound field present."""

        obj = factory()
        for name, value in fields.items():
            binding = self._bindings.get(name)
            if binding is None or binding.setter is None:
                continue
            binding.setter(obj, value)
        return obj


__all__ = ["FieldBinding", "FieldRegistry"]

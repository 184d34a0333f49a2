"""Normalized in-memory cache for client results.

Objects with an identity field are stored once under ``Type:id`` and
referenced from every result that contains them, so a later response
updates all queries that selected the same object. Objects without an
identity are stored under the operation's root key plus their path.

Merges are serialized by a lock and swap in a new snapshot
(copy-on-write); reads use whatever snapshot is current and never lock.
"""

import json
import logging
import threading
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from .artifacts import OperationDescriptor, ResultField

logger = logging.getLogger(__name__)

REF_KEY = "__ref"


class _Miss(Exception):
    """A selected field is not in the cache."""


class NormalizedCache:
    """Identity-keyed store of the field values returned by successful responses.

    Args:
        id_fields: Field names tried, in order, as the identity of an object.
    """

    def __init__(self, id_fields: tuple[str, ...] = ("id",)):
        self.id_fields = tuple(id_fields)
        self._entries: Mapping[str, Mapping[str, Any]] = MappingProxyType({})
        self._lock = threading.Lock()

    @staticmethod
    def root_key(descriptor: OperationDescriptor, variables: Mapping[str, Any] | None) -> str:
        """Structural key of an operation's result: name plus serialized variables."""
        return f"{descriptor.name}({json.dumps(dict(variables or {}), sort_keys=True, default=str)})"

    def identity(self, type_name: str, value: Mapping[str, Any]) -> str | None:
        for id_field in self.id_fields:
            if value.get(id_field) is not None:
                return f"{type_name}:{value[id_field]}"
        return None

    def merge(
        self,
        descriptor: OperationDescriptor,
        variables: Mapping[str, Any] | None,
        data: Mapping[str, Any],
        error_paths: Iterable[Sequence[str | int]] = (),
    ):
        """Merge a response's ``data`` into the cache.

        A field that is null because of an error at or below its response
        path (``error_paths``) is not written, so it keeps any cached value.
        """
        root = self.root_key(descriptor, variables)
        errored = tuple(tuple(p) for p in error_paths)
        with self._lock:
            entries = dict(self._entries)
            record = self._normalize(descriptor.selection, data, root, (), errored, entries)
            entries[root] = {**entries.get(root, {}), **record}
            self._entries = MappingProxyType(entries)
        logger.debug("Merged %s into cache (%d entries)", root, len(entries))

    def _normalize(
        self,
        fields: tuple[ResultField, ...],
        value: Mapping[str, Any],
        path: str,
        response_path: tuple[str | int, ...],
        errored: tuple[tuple[str | int, ...], ...],
        entries: dict[str, Any],
    ) -> dict[str, Any]:
        record = {}
        for f in fields:
            if f.name not in value:
                continue
            field_path = response_path + (f.name,)
            if value[f.name] is None and any(p[:len(field_path)] == field_path for p in errored):
                continue
            record[f.name] = self._normalize_value(
                f, value[f.name], f"{path}.{f.name}", field_path, errored, entries
            )
        return record

    def _normalize_value(
        self,
        result_field: ResultField,
        value: Any,
        path: str,
        response_path: tuple[str | int, ...],
        errored: tuple[tuple[str | int, ...], ...],
        entries: dict,
    ) -> Any:
        if value is None or result_field.is_leaf:
            return value
        if isinstance(value, list):
            return [
                self._normalize_value(
                    result_field, item, f"{path}.{index}", response_path + (index,), errored, entries
                )
                for index, item in enumerate(value)
            ]
        key = self.identity(result_field.type_name, value) or path
        record = self._normalize(result_field.fields, value, key, response_path, errored, entries)
        entries[key] = {**entries.get(key, {}), **record}
        return {REF_KEY: key}

    def read(
        self, descriptor: OperationDescriptor, variables: Mapping[str, Any] | None
    ) -> dict[str, Any] | None:
        """Rebuild an operation's data from the cache; None unless every selected field is cached."""
        entries = self._entries
        record = entries.get(self.root_key(descriptor, variables))
        if record is None:
            return None
        try:
            return self._denormalize(descriptor.selection, record, entries)
        except _Miss:
            return None

    def _denormalize(
        self, fields: tuple[ResultField, ...], record: Mapping[str, Any], entries: Mapping
    ) -> dict[str, Any]:
        result = {}
        for f in fields:
            if f.name not in record:
                raise _Miss(f.name)
            result[f.name] = self._denormalize_value(f, record[f.name], entries)
        return result

    def _denormalize_value(self, result_field: ResultField, value: Any, entries: Mapping) -> Any:
        if value is None or result_field.is_leaf:
            return value
        if isinstance(value, list):
            return [self._denormalize_value(result_field, item, entries) for item in value]
        record = entries.get(value[REF_KEY])
        if record is None:
            raise _Miss(value[REF_KEY])
        return self._denormalize(result_field.fields, record, entries)

    def get(self, key: str) -> dict[str, Any] | None:
        """A copy of the raw entry stored under ``key``."""
        entry = self._entries.get(key)
        return dict(entry) if entry is not None else None

    def keys(self) -> list[str]:
        return list(self._entries)

    def clear(self):
        with self._lock:
            self._entries = MappingProxyType({})

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

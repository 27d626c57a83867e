"""
Recursive tagged-union value for vendor-defined open schemas.

Tool arguments, metadata blobs and other free-form payloads are carried as
``Value`` objects so the core never has to guess at a vendor's shape.

Decoding is *discriminated*: the JSON text is tokenized once and each node is
classified by the kind of token it came from.  A quoted ``"42"`` is therefore
always a STRING, never a NUMBER.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ValueKind(Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class Value:
    """
    One node of a JSON-shaped value tree.

    ``data`` holds the Python payload for the node: ``None``, ``bool``,
    ``int``/``float``, ``str``, ``tuple[Value, ...]`` or ``dict[str, Value]``.
    Build instances with :meth:`of` or :meth:`decode` rather than directly.
    """

    kind: ValueKind
    data: Any = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def null(cls) -> Value:
        return cls(ValueKind.NULL)

    @classmethod
    def of(cls, obj: Any) -> Value:
        """
        Convert plain Python data into a ``Value`` tree.

        Raises ``TypeError`` for unsupported types and for object keys that
        are not strings.
        """
        if isinstance(obj, Value):
            return obj
        if obj is None:
            return cls(ValueKind.NULL)
        # bool is a subclass of int -- check it first.
        if isinstance(obj, bool):
            return cls(ValueKind.BOOL, obj)
        if isinstance(obj, (int, float)):
            return cls(ValueKind.NUMBER, obj)
        if isinstance(obj, str):
            return cls(ValueKind.STRING, obj)
        if isinstance(obj, (list, tuple)):
            return cls(ValueKind.ARRAY, tuple(cls.of(item) for item in obj))
        if isinstance(obj, dict):
            items: dict[str, Value] = {}
            for key, item in obj.items():
                if not isinstance(key, str):
                    raise TypeError(
                        f"Object keys must be str, got {type(key).__name__}"
                    )
                items[key] = cls.of(item)
            return cls(ValueKind.OBJECT, items)
        raise TypeError(f"Unsupported value type: {type(obj).__name__}")

    @classmethod
    def decode(cls, text: str | bytes) -> Value:
        """Parse JSON text.  Raises ``ValueError`` on malformed input."""
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        return cls.of(json.loads(text))

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def to_python(self) -> Any:
        if self.kind is ValueKind.ARRAY:
            return [item.to_python() for item in self.data]
        if self.kind is ValueKind.OBJECT:
            return {key: item.to_python() for key, item in self.data.items()}
        return self.data

    def encode(self, *, sort_keys: bool = False) -> str:
        """Serialize to compact JSON.  NaN and infinities are rejected."""
        return json.dumps(
            self.to_python(),
            ensure_ascii=False,
            allow_nan=False,
            sort_keys=sort_keys,
            separators=(",", ":"),
        )

    def pretty(self) -> str:
        return json.dumps(
            self.to_python(), ensure_ascii=False, allow_nan=False,
            sort_keys=True, indent=2,
        )

    # ------------------------------------------------------------------
    # Accessors -- ``None`` on kind mismatch
    # ------------------------------------------------------------------

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def as_str(self) -> str | None:
        return self.data if self.kind is ValueKind.STRING else None

    def as_bool(self) -> bool | None:
        return self.data if self.kind is ValueKind.BOOL else None

    def as_number(self) -> int | float | None:
        return self.data if self.kind is ValueKind.NUMBER else None

    def as_int(self) -> int | None:
        if self.kind is not ValueKind.NUMBER:
            return None
        if isinstance(self.data, float) and not math.isfinite(self.data):
            return None
        return int(self.data)

    def as_list(self) -> list[Value] | None:
        return list(self.data) if self.kind is ValueKind.ARRAY else None

    def as_dict(self) -> dict[str, Value] | None:
        return dict(self.data) if self.kind is ValueKind.OBJECT else None

    def get(self, key: str | int, default: Value | None = None) -> Value | None:
        try:
            return self[key]
        except (KeyError, IndexError, TypeError):
            return default

    # Objects are stored as dicts; hash them order-independently.
    def __hash__(self) -> int:
        if self.kind is ValueKind.OBJECT:
            return hash((self.kind, frozenset(self.data.items())))
        return hash((self.kind, self.data))

    def __getitem__(self, key: str | int) -> Value:
        if self.kind is ValueKind.OBJECT and isinstance(key, str):
            return self.data[key]
        if self.kind is ValueKind.ARRAY and isinstance(key, int):
            return self.data[key]
        raise TypeError(f"{self.kind.value} value is not subscriptable by {key!r}")


def decode_arguments(raw: str) -> dict[str, Value]:
    """
    Parse a tool invocation's raw argument text into a name -> Value map.

    An empty (or whitespace-only) string means "no arguments".  Raises
    ``ValueError`` when the text is not JSON or not a JSON object.
    """
    if not raw or not raw.strip():
        return {}
    value = Value.decode(raw)
    if value.kind is not ValueKind.OBJECT:
        raise ValueError(
            f"Tool arguments must be a JSON object, got {value.kind.value}"
        )
    return dict(value.data)

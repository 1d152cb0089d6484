"""Parameter files in the OpenCV FileStorage YAML dialect."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import yaml

_DIRECTIVE = re.compile(r"\A\s*%YAML[: ]?\d+\.\d+[^\n]*(\n|\Z)")

_DTYPES = {
    "u": np.uint8,
    "c": np.int8,
    "w": np.uint16,
    "s": np.int16,
    "i": np.int32,
    "f": np.float32,
    "d": np.float64,
}


class _FileStorageLoader(yaml.SafeLoader):
    """Safe loader that also understands OpenCV matrix nodes."""


def _construct_matrix(loader: yaml.SafeLoader, node: yaml.Node) -> np.ndarray:
    fields = loader.construct_mapping(node, deep=True)
    try:
        rows, cols = int(fields["rows"]), int(fields["cols"])
    except KeyError as exc:
        raise ValueError(f"matrix node without {exc.args[0]!r}") from None
    dtype = _DTYPES.get(str(fields.get("dt", "d")), np.float64)
    data = np.asarray(fields.get("data", []), dtype=dtype)
    if data.size != rows * cols:
        raise ValueError(f"matrix holds {data.size} values, expected {rows * cols}")
    return data.reshape(rows, cols)


_FileStorageLoader.add_constructor("tag:yaml.org,2002:opencv-matrix", _construct_matrix)


def parse_file_storage(text: str) -> dict[str, Any]:
    """Parse a FileStorage YAML document into a dict of top-level parameters."""
    body = _DIRECTIVE.sub("", text, count=1)
    try:
        values = yaml.load(body, Loader=_FileStorageLoader)
    except yaml.YAMLError as exc:
        raise ValueError(f"malformed parameter file: {exc}") from exc
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise ValueError("parameter file must hold a mapping at the top level")
    return values


@dataclass(frozen=True)
class Config:
    """Read-only parameter set loaded from a parameter file."""

    values: Mapping[str, Any] = field(default_factory=dict)
    source: str | None = None

    @classmethod
    def load(cls, filename) -> Config:
        path = Path(filename)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise FileNotFoundError(f"parameter file {filename} does not exist.") from None
        return cls(parse_file_storage(text), str(path))

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def __getitem__(self, key: str) -> Any:
        try:
            return self.values[key]
        except KeyError:
            raise KeyError(f"missing parameter {key!r}") from None

    def __contains__(self, key: object) -> bool:
        return key in self.values
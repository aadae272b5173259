"""
Run configuration for the aggregation engine.

A ``RunConfig`` is frozen: the engine copies the one it was given at the
start of a run, so editing the controller's configuration mid-run only
affects the next run.
"""

from __future__ import annotations

import json
import numbers
import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None  # type: ignore

from .exceptions import InvalidConfiguration

###############################################################################
# Constants
###############################################################################

DEFAULT_BOUNDARY_OFFSET = 16  # keeps fresh walkers from spawning onto the aggregate
DEFAULT_RADII_NPOINTS = 50
DEFAULT_TARGET_COUNT = 1000


class LatticeType(Enum):
    """Grid connectivity: square/cubic or triangular/hexagonal."""

    SQUARE = "square"
    TRIANGLE = "triangle"


class AttractorType(Enum):
    """Fixed seed geometry the first walkers attach to."""

    POINT = "point"
    LINE = "line"
    PLANE = "plane"  # 3D only


def _coerce_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip()
        for member in enum_cls:
            if key.upper() == member.name or key.lower() == member.value:
                return member
    raise InvalidConfiguration(
        f"{value!r} is not a valid {enum_cls.__name__} "
        f"(expected one of {[m.value for m in enum_cls]})"
    )


def validate_sticky_coefficient(value: float) -> float:
    """Return ``value`` as a float if it lies in (0, 1], else raise."""
    try:
        coeff = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"sticky coefficient {value!r} is not a number") from exc
    # NaN fails both comparisons, so test the accepted range directly
    if not (0.0 < coeff <= 1.0):
        raise InvalidConfiguration(f"sticky coefficient must be in (0, 1], got {value!r}")
    return coeff


def _check_int(name: str, value: Any, minimum: int) -> None:
    # bool is an Integral; floats such as 3.0 are not accepted
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidConfiguration(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidConfiguration(f"{name} must be >= {minimum}, got {value!r}")


def _reject_unknown_keys(keys) -> None:
    unknown = set(keys) - {f.name for f in fields(RunConfig)}
    if unknown:
        raise InvalidConfiguration(f"unknown configuration keys: {sorted(unknown)}")


@dataclass(frozen=True)
class RunConfig:
    """Defines the physics and run-control rules for one aggregation run."""

    lattice_type: LatticeType = LatticeType.SQUARE
    attractor_type: AttractorType = AttractorType.POINT
    attractor_extent: int = 1
    sticky_coefficient: float = 1.0
    target_count: int = DEFAULT_TARGET_COUNT
    continuous: bool = False
    boundary_offset: int = DEFAULT_BOUNDARY_OFFSET
    radii_npoints: int = DEFAULT_RADII_NPOINTS
    queue_maxsize: int = 0
    seed: Optional[int] = None

    @property
    def effective_target(self) -> int:
        """Particle count to grow to; 0 means run until aborted."""
        return 0 if self.continuous else self.target_count

    @property
    def effective_extent(self) -> int:
        if self.attractor_type is AttractorType.POINT:
            return 1
        return self.attractor_extent

    def validate(self, dimension: int = 2) -> "RunConfig":
        """Raise ``InvalidConfiguration`` on any malformed field, else return self."""
        if dimension not in (2, 3):
            raise InvalidConfiguration(f"dimension must be 2 or 3, got {dimension!r}")
        if not isinstance(self.lattice_type, LatticeType):
            raise InvalidConfiguration(f"invalid lattice type {self.lattice_type!r}")
        if not isinstance(self.attractor_type, AttractorType):
            raise InvalidConfiguration(f"invalid attractor type {self.attractor_type!r}")
        validate_sticky_coefficient(self.sticky_coefficient)
        if self.attractor_type is AttractorType.PLANE and dimension == 2:
            raise InvalidConfiguration("a plane attractor is only available in 3D")
        if self.attractor_type is not AttractorType.POINT:
            _check_int("attractor extent", self.attractor_extent, 1)
        _check_int("target count", self.target_count, 0)
        _check_int("boundary offset", self.boundary_offset, 0)
        _check_int("radii_npoints", self.radii_npoints, 1)
        _check_int("queue_maxsize", self.queue_maxsize, 0)
        if self.seed is not None:
            _check_int("seed", self.seed, 0)
        return self

    def with_changes(self, **changes: Any) -> "RunConfig":
        _reject_unknown_keys(changes)
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RunConfig":
        """Build a config from a plain mapping (e.g. parsed JSON/TOML)."""
        _reject_unknown_keys(data)
        params = dict(data)
        if "lattice_type" in params:
            params["lattice_type"] = _coerce_enum(LatticeType, params["lattice_type"])
        if "attractor_type" in params:
            params["attractor_type"] = _coerce_enum(AttractorType, params["attractor_type"])
        if "sticky_coefficient" in params:
            params["sticky_coefficient"] = validate_sticky_coefficient(params["sticky_coefficient"])
        return cls(**params)


def load_config(path: str | os.PathLike[str]) -> RunConfig:
    """
    Load a ``RunConfig`` from a JSON or TOML file.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        raw = json.loads(data.decode("utf-8"))
    elif suffix in {".toml", ".tml"}:
        if tomllib is None:
            raise RuntimeError("tomllib is unavailable; cannot parse TOML files")
        raw = tomllib.loads(data.decode("utf-8"))
    else:
        raise InvalidConfiguration(f"Unsupported configuration file format: {suffix}")
    if not isinstance(raw, dict):
        raise InvalidConfiguration(f"{path} does not contain a table of settings")
    return RunConfig.from_dict(raw)


__all__ = [
    "LatticeType",
    "AttractorType",
    "RunConfig",
    "validate_sticky_coefficient",
    "load_config",
]

"""Time-series recording of a response read from the integrator state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from .errors import InvalidConfigurationError

ResponseFn = Callable[[np.ndarray], Any]


def dof_response(index: int) -> ResponseFn:
    """Response extractor reading a single degree of freedom."""
    index = int(index)

    def _read(u: np.ndarray) -> float:
        return float(u[index])

    return _read


def linear_functional(weights) -> ResponseFn:
    """Response extractor computing ``weights · u``."""
    w = np.asarray(weights, dtype=float).ravel()

    def _read(u: np.ndarray) -> float:
        return float(w @ u)

    return _read


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


@dataclass(frozen=True)
class ResultSeries:
    time: np.ndarray                 # shape (N,)
    values: np.ndarray               # shape (N,) or (N, k)
    extras: Dict[str, np.ndarray] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return int(self.time.size)

    def pairs(self):
        return list(zip(self.time.tolist(), self.values.tolist()))

    def to_frame(self) -> pd.DataFrame:
        data: Dict[str, Any] = {"Time_s": self.time}
        if self.values.ndim == 1:
            data["Response"] = self.values
        else:
            for j in range(self.values.shape[1]):
                data[f"Response_{j}"] = self.values[:, j]
        data.update(self.extras)
        df = pd.DataFrame(data)
        df.attrs.update(self.metadata)
        return df


class ResultCollector:
    """Append-only accumulator of (time, response) samples."""

    def __init__(self):
        self._t: List[float] = []
        self._v: List[Any] = []
        self._extras: Dict[str, List[float]] = {}
        self._frozen: Optional[ResultSeries] = None

    def __len__(self) -> int:
        return len(self._t)

    def record(self, t: float, value, **extras: float) -> None:
        if self._frozen is not None:
            raise InvalidConfigurationError("collector is frozen", stage="collect", t=t)
        if self._t and t <= self._t[-1]:
            raise InvalidConfigurationError(
                f"time {t!r} does not advance past {self._t[-1]!r}", stage="collect", t=t
            )
        if self._t and set(extras) != set(self._extras):
            raise InvalidConfigurationError(
                f"extra columns changed from {sorted(self._extras)} to {sorted(extras)}",
                stage="collect",
                t=t,
            )
        self._t.append(float(t))
        self._v.append(np.array(value, dtype=float))
        for key, val in extras.items():
            self._extras.setdefault(key, []).append(float(val))

    def freeze(self, **metadata: Any) -> ResultSeries:
        if self._frozen is None:
            self._frozen = ResultSeries(
                time=_readonly(np.asarray(self._t, dtype=float)),
                values=_readonly(np.asarray(self._v, dtype=float)),
                extras={k: _readonly(np.asarray(v, dtype=float)) for k, v in self._extras.items()},
                metadata=dict(metadata),
            )
        return self._frozen

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class Domain:
    lo: float
    hi: float


def nan_domain(values: Iterable[float | None]) -> Domain | None:
    """
    min/max over the finite values only.

    Unparseable prices end up as NaN (and a zero price as -inf); those must not
    leak into color/size domains.
    """
    lo: float | None = None
    hi: float | None = None
    for v in values:
        if v is None:
            continue
        f = float(v)
        if not math.isfinite(f):
            continue
        lo = f if lo is None else min(lo, f)
        hi = f if hi is None else max(hi, f)
    if lo is None or hi is None:
        return None
    return Domain(lo=lo, hi=hi)

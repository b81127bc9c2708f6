"""
Distance metrics for similarity joins.

Numeric metrics (L1, L2, HAVERSINE) take two equal-length sequences of
floats; JACCARD takes two iterables of hashable values and treats them as
sets.
"""

import math
from enum import Enum

EARTH_RADIUS_KM = 6371.0


class SimType(Enum):
    L1 = "l1"
    L2 = "l2"
    JACCARD = "jaccard"
    HAVERSINE = "haversine"


def l1_distance(a, b):
    return sum(abs(x - y) for x, y in zip(a, b))


def l2_distance(a, b):
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def jaccard_distance(a, b):
    """1 - |A ∩ B| / |A ∪ B|; two empty sets are at distance 0."""
    a, b = set(a), set(b)
    union = a | b
    if not union:
        return 0.0
    return 1.0 - len(a & b) / len(union)


def haversine_distance(a, b, radius=EARTH_RADIUS_KM):
    """Great-circle distance between (lat, lon) pairs given in degrees."""
    lat1, lon1 = math.radians(a[0]), math.radians(a[1])
    lat2, lon2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * radius * math.asin(min(1.0, math.sqrt(h)))


_METRICS = {
    SimType.L1: l1_distance,
    SimType.L2: l2_distance,
    SimType.JACCARD: jaccard_distance,
    SimType.HAVERSINE: haversine_distance,
}


def get_metric(sim_type):
    if not isinstance(sim_type, SimType):
        sim_type = SimType(str(sim_type).lower())
    return _METRICS[sim_type]

"""Greedy proximity clustering of resolved locations for display."""

import logging
from typing import List, Sequence

from shapely.geometry import Point

from .models import Cluster, LocationRecord

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.5  # degrees


def planar_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Euclidean distance in degree space. Not geodesic."""
    return Point(lng1, lat1).distance(Point(lng2, lat2))  # shapely uses (x=lng, y=lat)


def cluster_locations(records: Sequence[LocationRecord],
                      distance_threshold: float = DEFAULT_THRESHOLD) -> List[Cluster]:
    """
    Single pass greedy clustering, O(n^2).

    Each unconsumed record seeds a cluster; every later unconsumed record
    closer than distance_threshold to the cluster's *current* centroid is
    merged and the centroid updated as a running mean. Because the centroid
    moves while members are added, the result depends on input order.
    """
    clusters: List[Cluster] = []
    used = set()

    for i, seed in enumerate(records):
        if i in used:
            continue
        used.add(i)
        cluster = Cluster(lat=seed.lat, lng=seed.lng, seed=seed, count=1, member_ips=[seed.ip])

        for j in range(i + 1, len(records)):
            if j in used:
                continue
            candidate = records[j]
            distance = planar_distance(cluster.lat, cluster.lng, candidate.lat, candidate.lng)
            if distance < distance_threshold:
                cluster.count += 1
                cluster.member_ips.append(candidate.ip)
                cluster.lat = (cluster.lat * (cluster.count - 1) + candidate.lat) / cluster.count
                cluster.lng = (cluster.lng * (cluster.count - 1) + candidate.lng) / cluster.count
                used.add(j)

        clusters.append(cluster)

    logger.debug(f"Clustered {len(records)} locations into {len(clusters)} clusters")
    return clusters

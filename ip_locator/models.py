"""Data models for the IP locator."""

import math
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class LocationRecord:
    ip: str
    lat: float
    lng: float
    country: str = ""
    country_code: str = ""
    region: str = ""
    city: str = ""
    timezone: str = ""
    isp: str = ""
    org: str = ""
    as_number: str = ""
    mobile: bool = False

    @property
    def is_resolved(self) -> bool:
        """A record only counts as resolved when both coordinates are finite numbers."""
        try:
            return math.isfinite(self.lat) and math.isfinite(self.lng)
        except TypeError:
            return False

    @property
    def connection_type(self) -> str:
        return "mobile" if self.mobile else "broadband"

    def summary(self) -> str:
        """One-line human readable description, used by the CLI."""
        place = ", ".join(p for p in (self.city, self.region, self.country) if p)
        if self.country_code:
            place = f"{place} ({self.country_code})" if place else self.country_code
        parts = [place or "unknown place", f"{self.lat:.4f}, {self.lng:.4f}"]
        for extra in (self.timezone, self.isp, self.as_number):
            if extra:
                parts.append(extra)
        parts.append("Mobile/Cellular" if self.mobile else "Broadband/WiFi")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        """Serialize using the upstream wire keys (countryCode, as, ...)."""
        return {
            "ip": self.ip,
            "country": self.country,
            "countryCode": self.country_code,
            "region": self.region,
            "city": self.city,
            "lat": self.lat,
            "lng": self.lng,
            "timezone": self.timezone,
            "isp": self.isp,
            "org": self.org,
            "as": self.as_number,
            "mobile": self.mobile,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LocationRecord":
        return cls(
            ip=data.get("ip", ""),
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            country=data.get("country") or "",
            country_code=data.get("countryCode") or "",
            region=data.get("region") or "",
            city=data.get("city") or "",
            timezone=data.get("timezone") or "",
            isp=data.get("isp") or "",
            org=data.get("org") or "",
            as_number=data.get("as") or "",
            mobile=bool(data.get("mobile", False)),
        )


@dataclass
class CacheEntry:
    ip: str
    location: LocationRecord
    stored_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.stored_at < ttl_seconds


@dataclass
class ResolutionOutcome:
    ip: str
    location: Optional[LocationRecord] = None
    error: Optional[str] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.location is not None

    def to_dict(self) -> dict:
        if self.location is not None:
            return {"ip": self.ip, "location": self.location.to_dict(), "cached": self.from_cache}
        return {"ip": self.ip, "error": self.error}


@dataclass
class Cluster:
    lat: float
    lng: float
    seed: LocationRecord
    count: int = 1
    member_ips: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.seed.to_dict()
        data.update({
            "lat": round(self.lat, 6),
            "lng": round(self.lng, 6),
            "count": self.count,
            "ips": list(self.member_ips),
        })
        return data


@dataclass
class ClusterRefresh:
    """Handoff to the renderer: ordered clusters plus whether to recenter the view."""
    clusters: List[Cluster]
    focus: bool = False

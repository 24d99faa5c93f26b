"""IP geolocation providers: five free upstream APIs behind one resolve() contract.

Each adapter performs exactly one GET, normalizes the provider's JSON into a
LocationRecord and raises ProviderError when the upstream signals failure or
leaves out coordinates. ProviderChain adds single-provider and auto-fallback
resolution on top, populating the cache on every success.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import requests

from .cache import LocationCache
from .errors import AggregateProviderError, ProviderError
from .models import LocationRecord

logger = logging.getLogger(__name__)

AUTO = "auto"


def _text(value) -> str:
    if value is None:
        return ""
    return str(value)


def _coordinate(provider: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ProviderError(provider, f"{provider} returned no usable coordinates")
    if not math.isfinite(number):
        raise ProviderError(provider, f"{provider} returned no usable coordinates")
    return number


def _asn(value) -> str:
    return f"AS{value}" if value else ""


class Provider(ABC):
    """One upstream geolocation API."""

    name: str = ""
    label: str = ""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    @abstractmethod
    def url(self, ip: str) -> str:
        ...

    def params(self, ip: str) -> Optional[dict]:
        return None

    @abstractmethod
    def parse(self, ip: str, data: dict) -> LocationRecord:
        """Map the provider's JSON body to a LocationRecord or raise ProviderError."""
        ...

    def fail(self, message: Optional[str] = None) -> ProviderError:
        return ProviderError(self.label, message or f"Failed to fetch from {self.label}")

    def resolve(self, ip: str) -> LocationRecord:
        try:
            resp = self.session.get(self.url(ip), params=self.params(ip), timeout=self.timeout)
        except requests.RequestException as e:
            raise self.fail(f"{self.label} request error: {e}") from e
        try:
            data = resp.json()
        except ValueError as e:
            raise self.fail(f"{self.label} returned invalid JSON (HTTP {resp.status_code})") from e
        if not isinstance(data, dict):
            raise self.fail()
        record = self.parse(ip, data)
        logger.debug(f"{self.label}: {ip} -> ({record.lat}, {record.lng})")
        return record


class IpWhoProvider(Provider):
    """ipwho.is, HTTPS, no published rate limit."""

    name = "ipwho"
    label = "ipwho.is"

    def url(self, ip: str) -> str:
        return f"https://ipwho.is/{ip}"

    def parse(self, ip: str, data: dict) -> LocationRecord:
        if data.get("success") is not True:
            raise self.fail(data.get("message"))
        connection = data.get("connection") or {}
        timezone = data.get("timezone") or {}
        return LocationRecord(
            ip=_text(data.get("ip")) or ip,
            country=_text(data.get("country")),
            country_code=_text(data.get("country_code")),
            region=_text(data.get("region")),
            city=_text(data.get("city")),
            lat=_coordinate(self.label, data.get("latitude")),
            lng=_coordinate(self.label, data.get("longitude")),
            timezone=_text(timezone.get("id")) if isinstance(timezone, dict) else "",
            isp=_text(connection.get("isp")),
            org=_text(connection.get("org")),
            as_number=_asn(connection.get("asn")),
            mobile=False,
        )


class IpApiProvider(Provider):
    """ip-api.com, plain HTTP, 45 requests/minute."""

    name = "ipapi"
    label = "ip-api.com"
    FIELDS = "status,message,country,countryCode,region,regionName,city,lat,lon,timezone,isp,org,as,mobile,query"

    def url(self, ip: str) -> str:
        return f"http://ip-api.com/json/{ip}"

    def params(self, ip: str) -> Optional[dict]:
        return {"fields": self.FIELDS}

    def parse(self, ip: str, data: dict) -> LocationRecord:
        if data.get("status") != "success":
            raise self.fail(data.get("message"))
        return LocationRecord(
            ip=_text(data.get("query")) or ip,
            country=_text(data.get("country")),
            country_code=_text(data.get("countryCode")),
            region=_text(data.get("regionName")),
            city=_text(data.get("city")),
            lat=_coordinate(self.label, data.get("lat")),
            lng=_coordinate(self.label, data.get("lon")),
            timezone=_text(data.get("timezone")),
            isp=_text(data.get("isp")),
            org=_text(data.get("org")),
            as_number=_text(data.get("as")),
            mobile=bool(data.get("mobile", False)),
        )


class IpApiCoProvider(Provider):
    """ipapi.co, 1000 requests/day."""

    name = "ipapico"
    label = "ipapi.co"

    def url(self, ip: str) -> str:
        return f"https://ipapi.co/{ip}/json/"

    def parse(self, ip: str, data: dict) -> LocationRecord:
        if data.get("error"):
            raise self.fail(data.get("reason"))
        org = _text(data.get("org"))
        return LocationRecord(
            ip=_text(data.get("ip")) or ip,
            country=_text(data.get("country_name")),
            country_code=_text(data.get("country_code")),
            region=_text(data.get("region")),
            city=_text(data.get("city")),
            lat=_coordinate(self.label, data.get("latitude")),
            lng=_coordinate(self.label, data.get("longitude")),
            timezone=_text(data.get("timezone")),
            isp=org,
            org=org,
            as_number=_text(data.get("asn")),
            mobile=False,
        )


class IpInfoProvider(Provider):
    """ipinfo.io, 50,000 requests/month. Coordinates arrive as a "lat,lng" string."""

    name = "ipinfo"
    label = "ipinfo.io"

    def url(self, ip: str) -> str:
        return f"https://ipinfo.io/{ip}/json"

    def parse(self, ip: str, data: dict) -> LocationRecord:
        error = data.get("error")
        if error or not data.get("loc"):
            # ipinfo nests the text as {"error": {"title": ..., "message": ...}}
            if isinstance(error, dict):
                error = error.get("message") or error.get("title")
            raise self.fail(_text(error) or None)
        lat_str, _, lng_str = _text(data.get("loc")).partition(",")
        org = _text(data.get("org"))
        country = _text(data.get("country"))
        return LocationRecord(
            ip=_text(data.get("ip")) or ip,
            country=country,
            country_code=country,
            region=_text(data.get("region")),
            city=_text(data.get("city")),
            lat=_coordinate(self.label, lat_str),
            lng=_coordinate(self.label, lng_str),
            timezone=_text(data.get("timezone")),
            isp=org,
            org=org,
            as_number=org,
            mobile=False,
        )


class IpQueryProvider(Provider):
    """ipquery.io, HTTPS, free tier."""

    name = "ipquery"
    label = "ipquery.io"

    def url(self, ip: str) -> str:
        return f"https://api.ipquery.io/{ip}"

    def parse(self, ip: str, data: dict) -> LocationRecord:
        location = data.get("location")
        if not location or not isinstance(location, dict):
            raise self.fail()
        isp = data.get("isp") or {}
        connection = data.get("connection") or {}
        return LocationRecord(
            ip=_text(data.get("ip")) or ip,
            country=_text(location.get("country")),
            country_code=_text(location.get("country_code")),
            region=_text(location.get("state")),
            city=_text(location.get("city")),
            lat=_coordinate(self.label, location.get("latitude")),
            lng=_coordinate(self.label, location.get("longitude")),
            timezone=_text(location.get("timezone")),
            isp=_text(isp.get("isp")),
            org=_text(isp.get("org")),
            as_number=_asn(isp.get("asn")),
            mobile=bool(connection.get("mobile", False)),
        )


PROVIDER_CLASSES = {
    cls.name: cls
    for cls in (IpWhoProvider, IpApiProvider, IpApiCoProvider, IpInfoProvider, IpQueryProvider)
}

# HTTPS / unmetered providers first, rate-limited ones last.
AUTO_ORDER = ("ipwho", "ipquery", "ipapi", "ipapico", "ipinfo")


class ProviderChain:
    """Ordered providers with single-provider and auto-fallback resolution."""

    def __init__(self, providers: Sequence[Provider], cache: Optional[LocationCache] = None):
        if not providers:
            raise ValueError("ProviderChain needs at least one provider")
        self.providers: List[Provider] = list(providers)
        self.cache = cache
        self.hits: Dict[str, int] = {p.name: 0 for p in self.providers}
        self.failures: Dict[str, int] = {p.name: 0 for p in self.providers}

    def get(self, name: str) -> Provider:
        for provider in self.providers:
            if provider.name == name:
                return provider
        raise KeyError(f"Unknown provider '{name}'")

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.providers]

    def resolve(self, ip: str, provider: str = AUTO) -> LocationRecord:
        """
        Resolve ip live and cache the result.

        With a named provider only that provider is tried; its failure is
        re-raised as "<name> API failed: <message>". In auto mode every
        provider is tried in order and AggregateProviderError is raised once
        all of them have failed.
        """
        if provider == AUTO:
            record = self._resolve_auto(ip)
        else:
            record = self._resolve_single(ip, self.get(provider))
        if self.cache is not None:
            self.cache.put(ip, record)
        return record

    def _resolve_single(self, ip: str, provider: Provider) -> LocationRecord:
        try:
            record = provider.resolve(ip)
        except ProviderError as e:
            self.failures[provider.name] += 1
            logger.warning(f"{provider.name} API failed for {ip}: {e.message}")
            raise ProviderError(provider.name, f"{provider.name} API failed: {e.message}") from e
        self.hits[provider.name] += 1
        return record

    def _resolve_auto(self, ip: str) -> LocationRecord:
        failures = []
        for provider in self.providers:
            try:
                record = provider.resolve(ip)
            except ProviderError as e:
                self.failures[provider.name] += 1
                failures.append(e)
                logger.warning(f"{provider.label} failed for {ip}, trying fallback: {e.message}")
                continue
            self.hits[provider.name] += 1
            return record
        raise AggregateProviderError(failures)

    @property
    def stats(self) -> dict:
        return {"hits": dict(self.hits), "failures": dict(self.failures)}


def create_provider_chain(cache: Optional[LocationCache] = None, timeout: float = 10.0,
                          session: Optional[requests.Session] = None) -> ProviderChain:
    """Factory building the full chain in auto-fallback order, sharing one HTTP session."""
    session = session or requests.Session()
    providers = [PROVIDER_CLASSES[name](session=session, timeout=timeout) for name in AUTO_ORDER]
    return ProviderChain(providers, cache=cache)

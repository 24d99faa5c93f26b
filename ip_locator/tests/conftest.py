import pytest

from ip_locator.cache import LocationCache
from ip_locator.models import LocationRecord


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Stands in for requests.Session; answers by URL substring."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(url)
        for fragment, payload in self.routes.items():
            if fragment in url:
                if isinstance(payload, BaseException) and not isinstance(payload, ValueError):
                    raise payload
                return FakeResponse(payload)
        return FakeResponse({})


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start
        self.slept = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


class FakeTimer:
    """Captures threading.Timer arguments instead of starting a thread."""
    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


@pytest.fixture
def fake_timer():
    FakeTimer.created = []
    return FakeTimer


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    c = LocationCache(tmp_path / "cache.db", ttl_days=30, clock=clock)
    yield c
    c.close()


def make_record(ip="8.8.8.8", lat=37.386, lng=-122.0838, **kwargs):
    return LocationRecord(ip=ip, lat=lat, lng=lng, **kwargs)


IPWHO_OK = {
    "ip": "8.8.8.8",
    "success": True,
    "country": "United States",
    "country_code": "US",
    "region": "California",
    "city": "Mountain View",
    "latitude": 37.3860517,
    "longitude": -122.0838511,
    "timezone": {"id": "America/Los_Angeles"},
    "connection": {"asn": 15169, "org": "Google LLC", "isp": "Google LLC"},
}

IPAPI_OK = {
    "status": "success",
    "country": "United States",
    "countryCode": "US",
    "region": "VA",
    "regionName": "Virginia",
    "city": "Ashburn",
    "lat": 39.03,
    "lon": -77.5,
    "timezone": "America/New_York",
    "isp": "Google LLC",
    "org": "Google Public DNS",
    "as": "AS15169 Google LLC",
    "mobile": False,
    "query": "8.8.8.8",
}

IPAPICO_OK = {
    "ip": "1.1.1.1",
    "city": "Sydney",
    "region": "New South Wales",
    "country_name": "Australia",
    "country_code": "AU",
    "latitude": -33.8688,
    "longitude": 151.209,
    "timezone": "Australia/Sydney",
    "asn": "AS13335",
    "org": "CLOUDFLARENET",
}

IPINFO_OK = {
    "ip": "1.1.1.1",
    "city": "Brisbane",
    "region": "Queensland",
    "country": "AU",
    "loc": "-27.4820,153.0136",
    "org": "AS13335 Cloudflare, Inc.",
    "timezone": "Australia/Brisbane",
}

IPQUERY_OK = {
    "ip": "8.8.4.4",
    "isp": {"asn": 15169, "org": "Google LLC", "isp": "Google LLC"},
    "location": {
        "country": "United States",
        "country_code": "US",
        "city": "Mountain View",
        "state": "California",
        "latitude": 37.386,
        "longitude": -122.0838,
        "timezone": "America/Los_Angeles",
    },
    "risk": {"is_mobile": False},
    "connection": {"mobile": True},
}

"""Search and attribute filters over a batch's outcomes."""

from dataclasses import dataclass
from typing import Dict, Iterable, List

from .models import LocationRecord, ResolutionOutcome

FILTER_FIELDS = ("country", "city", "region", "isp", "timezone")


@dataclass
class FilterCriteria:
    search: str = ""
    country: str = ""
    city: str = ""
    region: str = ""
    isp: str = ""
    timezone: str = ""
    connection: str = ""  # "mobile" or "broadband"

    @property
    def is_empty(self) -> bool:
        return not any((self.search, self.country, self.city, self.region,
                        self.isp, self.timezone, self.connection))


def filter_options(records: Iterable[LocationRecord]) -> Dict[str, List[str]]:
    """Sorted distinct non-empty values for each dropdown field."""
    values = {name: set() for name in FILTER_FIELDS}
    for record in records:
        for name in FILTER_FIELDS:
            value = getattr(record, name)
            if value:
                values[name].add(value)
    return {name: sorted(found) for name, found in values.items()}


def _searchable_text(ip: str, record: LocationRecord) -> str:
    return " ".join([
        ip, record.country, record.city, record.region, record.isp,
        record.org, record.as_number, record.timezone,
    ]).lower()


def matches(outcome: ResolutionOutcome, criteria: FilterCriteria) -> bool:
    # Failed lookups stay visible whatever the filters say.
    if not outcome.ok:
        return True
    record = outcome.location
    if criteria.search and criteria.search.lower() not in _searchable_text(outcome.ip, record):
        return False
    for name in FILTER_FIELDS:
        wanted = getattr(criteria, name)
        if wanted and getattr(record, name) != wanted:
            return False
    if criteria.connection and record.connection_type != criteria.connection:
        return False
    return True


def apply_filters(outcomes: Iterable[ResolutionOutcome],
                  criteria: FilterCriteria) -> List[ResolutionOutcome]:
    return [o for o in outcomes if matches(o, criteria)]

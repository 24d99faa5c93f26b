"""Pasted-text cleanup: extract, validate and deduplicate IP addresses."""

import re
from typing import Iterable, List, Optional

# Digit groups only; octet ranges are not checked, so "300.1.1.1" passes.
IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$", re.ASCII)
# Full eight-group form only; "::" compression is not accepted.
IPV6_RE = re.compile(r"^([0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}$", re.ASCII)
_BRACKETED_RE = re.compile(r"<\s*([^,\s>]+)")


def is_valid_ip(value: str) -> bool:
    return bool(IPV4_RE.match(value) or IPV6_RE.match(value))


def extract_ip(line: str) -> Optional[str]:
    """Pull the candidate token out of one input line.

    "<1.2.3.4, web-01>" yields "1.2.3.4"; a plain line is returned trimmed.
    """
    line = line.strip()
    if "<" in line and ">" in line:
        match = _BRACKETED_RE.search(line)
        return match.group(1) if match else None
    return line or None


def normalize_lines(lines: Iterable[str]) -> List[str]:
    """Valid, unique IPs in first-seen order. Invalid lines are dropped silently."""
    seen = set()
    ips = []
    for line in lines:
        ip = extract_ip(line)
        if not ip or not is_valid_ip(ip) or ip in seen:
            continue
        seen.add(ip)
        ips.append(ip)
    return ips


def normalize_input(text: str) -> List[str]:
    """Clean a newline separated block of text into the batch IP list."""
    if not text:
        return []
    return normalize_lines(text.strip().split("\n"))

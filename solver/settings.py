import configparser
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from solver.search import DEFAULT_POLICY, MAX_SEARCH_DEPTH, SearchLimits, SearchPolicy

logger = logging.getLogger(__name__)

SETTINGS_PATH = Path(__file__).with_name("search.ini")
SECTION = "search"
DEFAULT_PROFILE = "balanced"

PROFILES = {
    # Complete search: any failure without a time or node abort is a proof.
    "exhaustive": replace(
        DEFAULT_POLICY,
        limit_branching=False,
        skip_probably_bad=False,
        skip_regressive=False,
        max_recycles=None,
    ),
    "conservative": replace(
        DEFAULT_POLICY,
        branching_narrow=8,
        branching_medium=12,
        branching_wide=16,
        skip_regressive=False,
        max_recycles=5,
    ),
    "balanced": DEFAULT_POLICY,
    "aggressive": replace(
        DEFAULT_POLICY,
        branching_narrow=3,
        branching_medium=5,
        branching_wide=8,
        probably_bad_depth=40,
        regress_depth=30,
        max_recycles=2,
    ),
}
PROFILE_ORDER = tuple(PROFILES)

MAX_BRANCHING = 64
MAX_SECONDS = 3600.0
MAX_NODES = 100_000_000


@dataclass(frozen=True, slots=True)
class SearchSettings:
    profile: str
    limits: SearchLimits
    policy: SearchPolicy


def profile_policy(name: Optional[str]) -> SearchPolicy:
    return PROFILES.get(name or DEFAULT_PROFILE, PROFILES[DEFAULT_PROFILE])


def _int_in_range(raw, default: int, low: int, high: int) -> int:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if value < low or value > high:
        return default
    return value


def _float_in_range(raw, default: float, low: float, high: float) -> float:
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if not low < value <= high:
        return default
    return value


def _recycles(raw, default: Optional[int]) -> Optional[int]:
    text = "" if raw is None else str(raw).strip().lower()
    if text in ("none", "unlimited"):
        return None
    if text == "":
        return default
    try:
        value = int(text)
    except ValueError:
        return default
    return value if value >= 0 else default


def _sanitize(raw: dict, profile: Optional[str] = None) -> SearchSettings:
    name = profile or str(raw.get("profile") or DEFAULT_PROFILE).strip()
    if name not in PROFILES:
        logger.warning("unknown search profile %r, using %s", name, DEFAULT_PROFILE)
        name = DEFAULT_PROFILE
    base = PROFILES[name]
    defaults = SearchLimits()

    limits = SearchLimits(
        max_depth=_int_in_range(raw.get("max_depth"), defaults.max_depth, 1, MAX_SEARCH_DEPTH),
        max_seconds=_float_in_range(raw.get("max_seconds"), defaults.max_seconds, 0.0, MAX_SECONDS),
        max_nodes=_int_in_range(raw.get("max_nodes"), defaults.max_nodes, 1, MAX_NODES),
    )
    policy = replace(
        base,
        max_recycles=_recycles(raw.get("max_recycles"), base.max_recycles),
        branching_narrow=_int_in_range(raw.get("branching_narrow"), base.branching_narrow, 1, MAX_BRANCHING),
        branching_medium=_int_in_range(raw.get("branching_medium"), base.branching_medium, 1, MAX_BRANCHING),
        branching_wide=_int_in_range(raw.get("branching_wide"), base.branching_wide, 1, MAX_BRANCHING),
    )
    return SearchSettings(profile=name, limits=limits, policy=policy)


def load_search_settings(path=None, profile: Optional[str] = None) -> SearchSettings:
    """Read the `[search]` section of an ini file; missing or bad values fall back to the profile."""

    path = Path(path) if path is not None else SETTINGS_PATH
    parser = configparser.ConfigParser()
    if not path.exists():
        return _sanitize({}, profile)
    try:
        parser.read(path, encoding="utf-8")
    except (configparser.Error, OSError, UnicodeDecodeError) as exc:
        logger.warning("ignoring unreadable settings file %s: %s", path, exc)
        return _sanitize({}, profile)
    if SECTION not in parser:
        return _sanitize({}, profile)
    return _sanitize(dict(parser[SECTION]), profile)


def save_search_settings(settings: SearchSettings, path=None) -> None:
    path = Path(path) if path is not None else SETTINGS_PATH
    policy = settings.policy
    parser = configparser.ConfigParser()
    parser[SECTION] = {
        "profile": settings.profile,
        "max_depth": str(settings.limits.max_depth),
        "max_seconds": str(settings.limits.max_seconds),
        "max_nodes": str(settings.limits.max_nodes),
        "max_recycles": "none" if policy.max_recycles is None else str(policy.max_recycles),
        "branching_narrow": str(policy.branching_narrow),
        "branching_medium": str(policy.branching_medium),
        "branching_wide": str(policy.branching_wide),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        parser.write(f)

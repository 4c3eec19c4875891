"""
Loads, compiles, and caches the classifier pattern tables from YAML.

The pattern tables are the single source of truth for:
  - domain and intent keyword families (German + English)
  - entity alias tables (countries, lead status, booking status)
  - lead-score bands shared by the classifier and the SQL builder
  - budget, timeframe and language-marker expressions

The compiled tables are process-wide, built once, and never mutated.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_PATTERNS_PATH = Path(__file__).resolve().parent / "patterns.yml"

_FLAGS = re.IGNORECASE


# ── Typed tables ─────────────────────────────────────────

@dataclass(frozen=True)
class CountryAlias:
    key: str
    display: str
    patterns: tuple[re.Pattern, ...]


@dataclass(frozen=True)
class ScoreBand:
    name: str
    low: int
    high: int

    def as_range(self) -> list[int]:
        return [self.low, self.high]


@dataclass(frozen=True)
class BudgetPatterns:
    with_currency: re.Pattern    # "[über] 2000 euro"
    with_keyword: re.Pattern     # "budget [über] 2000"
    over_words: re.Pattern
    under_words: re.Pattern


@dataclass(frozen=True)
class TimePatterns:
    today: re.Pattern
    yesterday: re.Pattern
    this_month: re.Pattern
    relative: re.Pattern
    periods: dict[str, tuple[re.Pattern, ...]]
    max_count: dict[str, int] = field(default_factory=dict)

    def period_for(self, unit: str) -> str | None:
        """Map a matched unit word ("tagen", "weeks", ...) to day | week | month."""
        for period, patterns in self.periods.items():
            if any(p.fullmatch(unit) for p in patterns):
                return period
        return None


@dataclass(frozen=True)
class PatternTables:
    """Fully compiled pattern tables."""

    version: int
    domains: dict[str, tuple[re.Pattern, ...]]       # priority order
    intents: dict[str, tuple[re.Pattern, ...]]       # priority order
    countries: tuple[CountryAlias, ...]
    lead_status: dict[str, tuple[re.Pattern, ...]]
    booking_status: dict[str, tuple[re.Pattern, ...]]
    score_bands: dict[str, ScoreBand]
    budget: BudgetPatterns
    time: TimePatterns
    german_markers: tuple[re.Pattern, ...]
    examples: dict[str, list[str]] = field(default_factory=dict)

    def band(self, name: str) -> ScoreBand:
        return self.score_bands[name]

    def country_display(self, key: str) -> str:
        for country in self.countries:
            if country.key == key:
                return country.display
        return key


# ── Parsing ──────────────────────────────────────────────

def _compile_all(patterns: list[str]) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, _FLAGS) for p in patterns)


def _compile_families(raw: dict[str, list[str]]) -> dict[str, tuple[re.Pattern, ...]]:
    return {name: _compile_all(patterns) for name, patterns in raw.items()}


def _parse_countries(raw: dict[str, Any]) -> tuple[CountryAlias, ...]:
    return tuple(
        CountryAlias(key=key, display=entry["display"], patterns=_compile_all(entry["aliases"]))
        for key, entry in raw.items()
    )


def _parse_bands(raw: dict[str, list[int]]) -> dict[str, ScoreBand]:
    bands: dict[str, ScoreBand] = {}
    for name, (low, high) in raw.items():
        if low > high:
            raise ValueError(f"Lead-score band '{name}' has low > high ({low} > {high})")
        bands[name] = ScoreBand(name=name, low=int(low), high=int(high))
    return bands


def _parse_budget(raw: dict[str, Any]) -> BudgetPatterns:
    over = "|".join(raw["over"])
    under = "|".join(raw["under"])
    qualifier = rf"(?:\b(?P<qual>{over}|{under})\s+)?"
    amount = rf"(?P<amount>{raw['amount']})"
    return BudgetPatterns(
        with_currency=re.compile(rf"{qualifier}{amount}\s*{raw['currency']}", _FLAGS),
        with_keyword=re.compile(
            rf"{raw['keyword']}\s*(?:von|of|:)?\s*{qualifier}{amount}", _FLAGS
        ),
        over_words=re.compile(rf"(?:{over})", _FLAGS),
        under_words=re.compile(rf"(?:{under})", _FLAGS),
    )


def _parse_time(raw: dict[str, Any]) -> TimePatterns:
    periods = {name: _compile_all(units) for name, units in raw["periods"].items()}
    units = "|".join(u for group in raw["periods"].values() for u in group)
    relative = re.compile(
        rf"\b{raw['relative_prefix']}\s+(?:(?P<count>\d+)\s+)?(?P<unit>{units})\b",
        _FLAGS,
    )
    return TimePatterns(
        today=re.compile(raw["today"], _FLAGS),
        yesterday=re.compile(raw["yesterday"], _FLAGS),
        this_month=re.compile(raw["this_month"], _FLAGS),
        relative=relative,
        periods=periods,
        max_count={period: int(n) for period, n in (raw.get("max_count") or {}).items()},
    )


def _parse_tables(raw_yaml: dict[str, Any]) -> PatternTables:
    return PatternTables(
        version=raw_yaml.get("version", 1),
        domains=_compile_families(raw_yaml["domains"]),
        intents=_compile_families(raw_yaml["intents"]),
        countries=_parse_countries(raw_yaml["countries"]),
        lead_status=_compile_families(raw_yaml["lead_status"]),
        booking_status=_compile_families(raw_yaml.get("booking_status") or {}),
        score_bands=_parse_bands(raw_yaml["lead_score_bands"]),
        budget=_parse_budget(raw_yaml["budget"]),
        time=_parse_time(raw_yaml["time"]),
        german_markers=_compile_all((raw_yaml.get("language_markers") or {}).get("de", [])),
        examples=raw_yaml.get("examples") or {},
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_pattern_tables() -> PatternTables:
    """Load and cache the compiled pattern tables from YAML."""
    with open(_PATTERNS_PATH, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return _parse_tables(raw)

"""fragile_city.parser – BeautifulSoup document → typed records.

Three extractors, one per page kind:

* :class:`CityListParser` – world counters and the city index
* :class:`WarsParser`     – the "Ongoing wars" block of the index page
* :class:`CityDetailParser` – one ``/city/<name>`` page

Fields are found by label / tooltip / icon text, never by column position.
Missing optional sections give empty containers.  List pages drop records
their validator rejects; a detail page is always returned.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag

from core.interfaces import Extractor
from core.models import Diagnostics

from .models import CityDetail, CityListing, CityListResult, GlobalStats, JobLevel, War
from .units import StatValue, extract_integer, parse_value_or_range
from .validators import validate_city, validate_city_details, validate_war

logger = logging.getLogger(__name__)

__all__ = ["CityListParser", "WarsParser", "CityDetailParser", "STAT_LABELS"]


# Tooltip label → stats key
STAT_LABELS: Dict[str, str] = {
    "Pollution": "pollution",
    "Housing": "housing",
    "Jobs": "jobs",
    "Food capacity": "food_capacity",
    "Daily Food Consumption": "daily_food_consumption",
    "Money": "money",
    "Daily Tax Income": "daily_tax_income",
    "Daily Cost": "daily_cost",
    "Energy": "energy",
    "Area": "area",
    "Sprawl": "sprawl",
    "Crime": "crime",
    "Fun": "fun",
    "Culture": "culture",
    "Health": "health",
}

ROW_SELECTOR = "div.flex.flex-row.items-center.space-x-1"
CITY_LINK = 'a[href^="/city/"]'

_LEVEL_RE = re.compile(r"Level\s+(\d+)")
_TAX_RE = re.compile(r"\s*(\d+(?:\.\d+)?)\s*%?\s*")
_ACTIVE_RE = re.compile(r"\((\d+)\)")
_RESOURCE_RE = re.compile(r"total\s+(\w+)")


# --------------------------------------------------------------------------- #
# Tree helpers
# --------------------------------------------------------------------------- #


def _text(tag: Optional[Tag]) -> str:
    return tag.get_text().strip() if tag is not None else ""


def _next_element(tag: Tag, name: Optional[str] = None) -> Optional[Tag]:
    """Immediately following element sibling, optionally required to be *name*."""
    sib = tag.find_next_sibling()
    if sib is None or (name is not None and sib.name != name):
        return None
    return sib


def _heading(doc: BeautifulSoup, name: str, contains: str) -> Optional[Tag]:
    return next((h for h in doc.find_all(name) if contains in h.get_text()), None)


def _icon_value(row: Tag, src_fragment: str) -> Optional[int]:
    """Integer in the ``<span>`` right after the icon whose src contains *src_fragment*."""
    value = None
    for img in row.select(f'img[src*="{src_fragment}"]'):
        span = _next_element(img, "span")
        if span is not None:
            value = extract_integer(span.get_text())
    return value


def _city_url(base_url: str, href: str) -> str:
    return base_url.rstrip("/") + href


# --------------------------------------------------------------------------- #
# Index page
# --------------------------------------------------------------------------- #


class CityListParser(Extractor[CityListResult]):
    name = "CityListParser"

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    def extract(self, doc: BeautifulSoup, diagnostics: Diagnostics, **kwargs: Any) -> CityListResult:
        stats = self._global_stats(doc)
        cities: List[CityListing] = []
        for row in doc.select(f"article {ROW_SELECTOR}"):
            record = self._city_row(row)
            if record is None:
                continue
            if validate_city(record, diagnostics):
                cities.append(CityListing(**record))

        logger.info("Scraped %d cities", len(cities))
        return CityListResult(global_stats=stats, cities=cities)

    # ------------------------------------------------------------------- #
    @staticmethod
    def _global_stats(doc: BeautifulSoup) -> GlobalStats:
        values: Dict[str, Optional[int]] = {}
        for block in doc.select("section .flex.flex-row.items-center"):
            text = block.get_text()
            spans = block.find_all("span")
            last = _text(spans[-1]) if spans else ""

            if "Year" in text:
                values["year"] = extract_integer(last)
            elif "Day" in text and "Daily" not in text:
                values["day"] = extract_integer(last)
            elif "Cities" in text:
                # <span><span class="opacity-50">2,147</span>(22)</span>
                total = next((s for s in spans if "opacity-50" in (s.get("class") or [])), None)
                if total is not None:
                    values["total_cities"] = extract_integer(total.get_text())
                full = _text(spans[1]) if len(spans) > 1 else ""
                m = _ACTIVE_RE.search(full)
                if m:
                    values["active_cities"] = int(m.group(1))
            elif "Total Citizens" in text:
                values["total_citizens"] = extract_integer(last)
            elif "Total Pollution" in text:
                values["total_pollution"] = extract_integer(last)
            elif "Daily Pollution" in text:
                values["daily_pollution"] = extract_integer(last)
        return GlobalStats(**values)

    def _city_row(self, row: Tag) -> Optional[Dict[str, Any]]:
        link = row.select_one(CITY_LINK)
        if link is None:
            return None
        name = _text(link)
        if not name:
            return None

        row_text = row.get_text()
        return {
            "name": name,
            "url": _city_url(self.base_url, link["href"]),
            "pollution": _icon_value(row, "pollution.svg"),
            "citizens": _icon_value(row, "citizen.svg"),
            "email_verified": row.select_one('img[src*="mail"]') is not None,
            "is_patron": "patreon" in row_text or row.select_one('a[href*="patreon"]') is not None,
            "has_contributed": "codebase" in row_text or row.select_one('a[href*="github"]') is not None,
        }


class WarsParser(Extractor[List[War]]):
    name = "WarsParser"

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    def extract(self, doc: BeautifulSoup, diagnostics: Diagnostics, **kwargs: Any) -> List[War]:
        wars: List[War] = []
        for p in doc.find_all("p"):
            if "Ongoing wars" not in p.get_text() or p.parent is None:
                continue
            for row in p.parent.select(ROW_SELECTOR):
                links = row.select(CITY_LINK)
                if len(links) < 2:
                    continue
                record = {
                    "attacker": _text(links[0]),
                    "attacker_url": _city_url(self.base_url, links[0].get("href", "")),
                    "defender": _text(links[1]),
                    "defender_url": _city_url(self.base_url, links[1].get("href", "")),
                    "missiles": self._missiles(row),
                }
                if validate_war(record, diagnostics):
                    wars.append(War(**record))

        logger.info("Found %d ongoing wars", len(wars))
        return wars

    @staticmethod
    def _missiles(row: Tag) -> Optional[int]:
        img = row.select_one('img[src*="might"]')
        if img is None:
            return None
        span = _next_element(img, "span")
        return extract_integer(span.get_text()) if span is not None else None


# --------------------------------------------------------------------------- #
# City page
# --------------------------------------------------------------------------- #


class CityDetailParser(Extractor[CityDetail]):
    name = "CityDetailParser"

    def extract(
        self,
        doc: BeautifulSoup,
        diagnostics: Diagnostics,
        *,
        name: Optional[str] = None,
        url: str = "",
        **kwargs: Any,
    ) -> CityDetail:
        record: Dict[str, Any] = {"name": name, "url": url}
        record.update(self._city_info(doc))
        record["stats"] = self._stats(doc)
        record["job_levels"] = self._job_levels(doc)
        record["sanctioned_by"] = self._sanctions(doc)
        record["resources"] = self._resources(doc)
        record["buildings"] = self._buildings(doc)

        validate_city_details(record, diagnostics)
        return CityDetail(**record)

    # ------------------------------------------------------------------- #
    @staticmethod
    def _city_info(doc: BeautifulSoup) -> Dict[str, Any]:
        """Region / year / day / season / citizens from the two-row header table."""
        info: Dict[str, Any] = {}
        table = doc.find("table")
        if table is None:
            return info
        rows = table.find_all("tr")
        if len(rows) < 2:
            return info

        headers = [_text(td) for td in rows[0].select("td.top_td")]
        for i, cell in enumerate(rows[1].select("td.top_td")):
            header = headers[i] if i < len(headers) else None
            value = _text(cell)
            if header == "Year":
                info["year"] = extract_integer(value)
            elif header == "Day":
                info["day"] = extract_integer(value)
            elif header == "Season":
                info["season"] = value or None
            elif header == "Citizens":
                info["citizens"] = extract_integer(value)
            elif i == 0:
                info["region"] = value or None
        return info

    @staticmethod
    def _stats(doc: BeautifulSoup) -> Dict[str, StatValue]:
        """Tooltip-labelled cells; the value sits in the same column one row down."""
        stats: Dict[str, StatValue] = {}
        for td in doc.select("td.top_td"):
            tooltip = _text(td.select_one(".tooltip"))
            if not tooltip:
                continue
            row = td.parent
            next_row = row.find_next_sibling("tr") if row is not None else None
            if next_row is None:
                continue
            idx = next((i for i, c in enumerate(row.find_all("td", recursive=False)) if c is td), None)
            value_cells = next_row.find_all("td", recursive=False)
            if idx is None or idx >= len(value_cells):
                continue

            for label, key in STAT_LABELS.items():
                if tooltip == label or label in tooltip:
                    value = parse_value_or_range(_text(value_cells[idx]))
                    if value is not None:
                        stats[key] = value
        return stats

    @staticmethod
    def _tax_rate(label: Tag) -> Optional[float]:
        """Decimal right after the "Level N" label; near misses give ``None``."""
        sib = label.next_sibling
        while isinstance(sib, NavigableString) and not sib.strip():
            sib = sib.next_sibling
        if sib is None:
            return None
        text = sib.get_text() if isinstance(sib, Tag) else str(sib)
        m = _TAX_RE.fullmatch(text)
        return float(m.group(1)) if m else None

    @classmethod
    def _job_levels(cls, doc: BeautifulSoup) -> List[JobLevel]:
        heading = _heading(doc, "h2", "Job/tax levels")
        container = _next_element(heading, "div") if heading is not None else None
        if container is None:
            return []

        levels: List[JobLevel] = []
        for block in container.select("div.flex.flex-col"):
            label = block.select_one("span.text-sm")
            m = _LEVEL_RE.search(_text(label))
            if not m:
                continue

            text = block.get_text(" ", strip=True)

            def count(suffix: str) -> int:
                found = re.search(rf"(\d[\d,]*)\s+{suffix}", text)
                return int(found.group(1).replace(",", "")) if found else 0

            tax_rate = cls._tax_rate(label)
            if tax_rate is None:
                logger.debug("No tax rate next to %r", _text(label))

            levels.append(
                JobLevel(
                    level=int(m.group(1)),
                    tax_rate=tax_rate,
                    citizens=count("citizens"),
                    total_jobs=count("total jobs"),
                    available_jobs=count("available jobs"),
                )
            )
        return levels

    @staticmethod
    def _sanctions(doc: BeautifulSoup) -> List[str]:
        heading = _heading(doc, "h2", "Sanctions")
        block = heading.find_next_sibling() if heading is not None else None
        if block is None:
            return []
        return [_text(a) for a in block.select(CITY_LINK) if _text(a)]

    @staticmethod
    def _resources(doc: BeautifulSoup) -> Dict[str, StatValue]:
        resources: Dict[str, StatValue] = {}
        for row in doc.select("div.flex.flex-row.items-center.justify-between"):
            img = row.select_one('img[src*="/images/"]')
            alt = img.get("alt") if img is not None else None
            spans = row.find_all("span")
            if not alt or "total" not in alt or len(spans) < 2:
                continue
            m = _RESOURCE_RE.search(alt)
            if not m:
                continue
            value = parse_value_or_range(_text(spans[-1]))
            if value is not None:
                resources[m.group(1)] = value
        return resources

    @staticmethod
    def _buildings(doc: BeautifulSoup) -> Dict[str, int]:
        """Building counts; a section without a count cell is an explicit 0."""
        buildings: Dict[str, int] = {}
        for h3 in doc.select("h3.text-l"):
            title = _text(h3)
            if not title:
                continue
            key = re.sub(r"\s+", "_", title.lower())

            container = h3.parent.parent if h3.parent is not None else None
            siblings: List[Tag] = []
            if container is not None and container.parent is not None:
                siblings = [s for s in container.parent.find_all(recursive=False) if s is not container]

            cell = None
            for sib in siblings:
                cell = sib.select_one("table td.bg-green-100 p.text-green-700")
                if cell is not None:
                    break

            if cell is None or not _text(cell):
                buildings[key] = 0
                continue
            count = extract_integer(_text(cell))
            if count is None:
                logger.debug("Unreadable count %r for building %s", _text(cell), key)
                continue
            buildings[key] = count
        return buildings

# trackerman/scrapers/listing_extractor.py

"""Turn Steam market responses into ordered price candidates."""

import json
import logging
import secrets
import time
from typing import Any, cast

from bs4 import BeautifulSoup, Tag

from trackerman.config.settings import Settings
from trackerman.models.fetch_options import FetchOptions
from trackerman.models.market_listing import MarketListing
from trackerman.parsers.exterior import ClassifiedName, classify_label
from trackerman.parsers.price_parser import parse_price

logger = logging.getLogger("trackerman.extractor")


def generate_listing_id() -> str:
    """Placeholder id for rows whose markup carries none."""
    return f"gen-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def _load_json(body: str) -> dict[str, Any] | None:
    """Decode *body* when it looks like a JSON object."""
    if not body.lstrip().startswith("{"):
        return None
    try:
        data: object = json.loads(body)
    except json.JSONDecodeError:
        logger.debug("Body looked like JSON but failed to decode")
        return None
    if not isinstance(data, dict):
        return None
    return cast(dict[str, Any], data)


def _first_text(row: Tag, selectors: list[str]) -> str:
    """Text of the first non-empty element matching any selector."""
    for selector in selectors:
        for el in row.select(selector):
            text = el.get_text(" ", strip=True)
            if text:
                return text
    return ""


def _attr(el: Tag, name: str) -> str | None:
    value = el.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    if not value:
        return None
    return value.strip() or None


class ListingExtractor:
    """Parses direct-listing pages and search results into candidates.

    Selectors come from ``selectors.json`` so markup changes on the
    marketplace side do not require code changes.
    """

    def __init__(self) -> None:
        selectors = self._load_selectors()
        self.listing: dict[str, Any] = selectors.get("listing", {})
        self.search: dict[str, Any] = selectors.get("search", {})

    @staticmethod
    def _load_selectors() -> dict[str, Any]:
        with open(Settings.SELECTORS_PATH, encoding="utf-8") as f:
            data: dict[str, Any] = json.load(f)
        return data

    # ── Per-row parsing (shared by both strategies) ──────

    def _seller_id(self, row: Tag) -> str | None:
        for attr in self.listing["seller_id_attrs"]:
            value = _attr(row, attr)
            if value:
                return value
            nested = row.find(attrs={attr: True})
            if isinstance(nested, Tag):
                value = _attr(nested, attr)
                if value:
                    return value
        link = row.select_one(self.listing["seller_link"])
        href = _attr(link, "href") if link is not None else None
        if href:
            segment = href.rstrip("/").rsplit("/", 1)[-1]
            return segment or None
        return None

    def _seller_name(self, row: Tag) -> str | None:
        for selector in self.listing["seller_name"]:
            el = row.select_one(selector)
            if el is None:
                continue
            name = _attr(el, "data-seller-name") or el.get_text(
                " ", strip=True
            )
            if name:
                return name
        return None

    def _listing_id(self, row: Tag) -> str:
        listing_id = _attr(row, self.listing["listing_id_attr"])
        if listing_id:
            return listing_id
        element_id = _attr(row, "id") or ""
        prefix: str = self.listing["listing_id_prefix"]
        if element_id.startswith(prefix) and len(element_id) > len(prefix):
            return element_id[len(prefix):]
        return generate_listing_id()

    def _parse_row(
        self,
        row: Tag,
        identity: ClassifiedName,
        price_selectors: list[str],
    ) -> MarketListing:
        price = parse_price(_first_text(row, price_selectors))
        return MarketListing(
            name=identity.name,
            exterior=identity.exterior,
            price=price.amount,
            currency=price.currency,
            listing_id=self._listing_id(row),
            seller_id=self._seller_id(row),
            seller_name=self._seller_name(row),
        )

    # ── Direct-listing strategy ──────────────────────────

    def _page_label(self, soup: BeautifulSoup) -> str:
        heading = soup.select_one(self.listing["heading"])
        if heading is not None:
            text = heading.get_text(" ", strip=True)
            if text:
                return text
        if soup.title is not None and soup.title.string:
            title = soup.title.string.strip()
            prefix: str = self.listing["title_prefix"]
            if title.startswith(prefix):
                title = title[len(prefix):]
            return title.strip()
        return ""

    def extract_listing_page(
        self,
        body: str,
        options: FetchOptions,
        fallback_label: str = "",
    ) -> list[MarketListing]:
        """Parse a listing page (HTML, or a JSON render with ``results_html``).

        The item name and tier come once from the page heading; when the
        body has none (JSON renders), *fallback_label* is classified
        instead.
        """
        payload = _load_json(body)
        html = str(payload.get("results_html") or "") if payload else body
        soup = BeautifulSoup(html, "lxml")

        label = self._page_label(soup) or fallback_label
        identity = classify_label(label)

        candidates = [
            self._parse_row(row, identity, self.listing["price"])
            for row in soup.select(self.listing["row"])
        ]
        logger.debug(
            "Listing page '%s': %d rows", identity.name, len(candidates),
        )
        return self.post_process(candidates, options)

    # ── Search-results strategy ──────────────────────────

    @staticmethod
    def _parse_result(result: dict[str, Any]) -> MarketListing:
        label = str(result.get("name") or result.get("hash_name") or "")
        identity = classify_label(label)
        price_text = str(
            result.get("sell_price_text")
            or result.get("sale_price_text")
            or ""
        )
        price = parse_price(price_text)
        return MarketListing(
            name=identity.name,
            exterior=identity.exterior,
            price=price.amount,
            currency=price.currency,
        )

    def _parse_results_html(self, html: str) -> list[MarketListing]:
        soup = BeautifulSoup(html, "lxml")
        candidates: list[MarketListing] = []
        for row in soup.select(self.search["row"]):
            name_el = row.select_one(self.search["item_name"])
            label = name_el.get_text(" ", strip=True) if name_el else ""
            candidates.append(
                self._parse_row(
                    row, classify_label(label), self.search["price"],
                )
            )
        return candidates

    def extract_search_results(
        self, body: str, options: FetchOptions,
    ) -> list[MarketListing]:
        """Parse a search response, preferring the structured result list."""
        payload = _load_json(body)
        raw_results: object = payload.get("results") if payload else None

        if isinstance(raw_results, list):
            results = cast(list[object], raw_results)
            candidates = [
                self._parse_result(cast(dict[str, Any], r))
                for r in results
                if isinstance(r, dict)
            ]
        else:
            html = (
                str(payload.get("results_html") or "")
                if payload
                else body
            )
            logger.info(
                "No structured results, parsing HTML fallback "
                "(%d chars)",
                len(html),
            )
            candidates = self._parse_results_html(html)

        logger.debug("Search response: %d candidates", len(candidates))
        return self.post_process(candidates, options)

    # ── Post-processing ──────────────────────────────────

    @staticmethod
    def post_process(
        candidates: list[MarketListing], options: FetchOptions,
    ) -> list[MarketListing]:
        """Filter by tier, sort by price, then truncate to ``options.count``.

        Zero prices are kept so callers can tell unparseable text apart
        from an empty page.
        """
        wanted = options.exterior_filter.strip().lower()
        if wanted:
            candidates = [
                c for c in candidates
                if c.exterior.value.lower() == wanted
            ]
        ordered = sorted(
            candidates,
            key=lambda c: c.price,
            reverse=options.price_type == "highest",
        )
        return ordered[: options.count]

"""Core scraping types, errors and the scraper interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional


class ScraperError(Exception):
    """Base class for scrape failures."""


class ConfigurationError(ScraperError):
    """Scraper invoked with an unusable configuration. Never retried."""


class BrowserSessionError(ScraperError):
    """Browser process or context could not be created."""


class PageLoadError(ScraperError):
    """Page failed to load properly."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load {url}: {reason}")


class SelectorNotFoundError(ScraperError):
    """No candidate selector yielded text."""

    def __init__(self, selectors: list[str], url: str, screenshot: Optional[str] = None):
        self.selectors = selectors
        self.url = url
        self.screenshot = screenshot
        super().__init__(f"None of {len(selectors)} selectors found on {url}")


class PriceParseError(ScraperError):
    """Recovered text does not yield a positive finite price."""

    def __init__(self, text: str, value: Decimal):
        self.text = text
        self.value = value
        super().__init__(f"Invalid price parsed: {text!r} -> {value}")


class AllSourcesFailedError(ScraperError):
    """Every source of a multi-source batch failed."""

    def __init__(self, failures: dict[str, str]):
        self.failures = failures
        details = "; ".join(f"{name}: {reason}" for name, reason in failures.items())
        super().__init__(f"All {len(failures)} sources failed ({details})")


@dataclass(frozen=True)
class SourceConfig:
    """Where and how to read one price."""

    name: str
    url: str
    selector: str
    field_name: str
    currency: str = "USD"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SourceConfig":
        missing = [key for key in ("name", "url", "selector", "field_name") if not data.get(key)]
        if missing:
            raise ConfigurationError(f"Source config {dict(data)} is missing {', '.join(missing)}")
        return cls(
            name=data["name"],
            url=data["url"],
            selector=data["selector"],
            field_name=data["field_name"],
            currency=data.get("currency") or "USD",
        )


def build_source_configs(
    raw_sources: Iterable[Mapping[str, Any]],
    allowed_fields: Optional[Iterable[str]] = None,
) -> tuple[SourceConfig, ...]:
    """Validate configured sources; field names must be unique and, when
    ``allowed_fields`` is given, one of those names."""
    allowed = tuple(allowed_fields) if allowed_fields is not None else None
    sources = tuple(SourceConfig.from_mapping(item) for item in raw_sources)
    seen: set[str] = set()
    for source in sources:
        if source.field_name in seen:
            raise ConfigurationError(f"Duplicate source field_name: {source.field_name}")
        if allowed is not None and source.field_name not in allowed:
            raise ConfigurationError(
                f"Source field_name {source.field_name!r} has no storage column "
                f"(expected one of {', '.join(allowed)})"
            )
        seen.add(source.field_name)
    return sources


@dataclass(frozen=True)
class ScraperSessionConfig:
    """Browser and flow options, fixed for the lifetime of a scraper."""

    headless: bool = True
    timeout_ms: int = 30000
    retry_count: int = 3
    retry_base_delay_ms: int = 2000
    user_agent: str = ""
    viewport: tuple[int, int] = (1920, 1080)
    executable_path: Optional[str] = None
    use_system_browser: bool = False
    require_visible: bool = False
    selector_timeout_ms: int = 5000
    human_delay_ms: tuple[int, int] = (1000, 3000)
    screenshot_dir: str = "data/screenshots"

    @classmethod
    def with_defaults(cls, **overrides: Any) -> "ScraperSessionConfig":
        """Build a config, ignoring overrides that are None."""
        from gold_price_bot.config import DEFAULT_USER_AGENT

        values = {key: value for key, value in overrides.items() if value is not None}
        values.setdefault("user_agent", DEFAULT_USER_AGENT)
        if not values.get("executable_path"):
            values["executable_path"] = None
        return cls(**values)

    @classmethod
    def from_settings(cls, settings, **overrides: Any) -> "ScraperSessionConfig":
        values = dict(
            headless=settings.scraper_headless,
            timeout_ms=settings.scraper_timeout_ms,
            retry_count=settings.scraper_retry_count,
            retry_base_delay_ms=settings.scraper_retry_base_delay_ms,
            user_agent=settings.scraper_user_agent,
            viewport=(settings.scraper_viewport_width, settings.scraper_viewport_height),
            executable_path=settings.chrome_executable_path,
            use_system_browser=settings.scraper_use_system_browser,
            require_visible=settings.scraper_require_visible,
            selector_timeout_ms=settings.scraper_selector_timeout_ms,
            human_delay_ms=(
                settings.scraper_human_delay_min_ms,
                settings.scraper_human_delay_max_ms,
            ),
            screenshot_dir=settings.screenshot_dir,
        )
        values.update(overrides)
        return cls.with_defaults(**values)

    @property
    def viewport_size(self) -> dict[str, int]:
        return {"width": self.viewport[0], "height": self.viewport[1]}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PriceObservation:
    """One timestamped price reading from a single source."""

    price: Decimal
    currency: str
    source_url: str
    time_period: str
    captured_at: datetime = field(default_factory=utc_now)


@dataclass
class SourceQuote:
    """Price read from one source of a multi-source batch."""

    price: Decimal
    currency: str
    source_url: str


@dataclass
class MultiSourceObservation:
    """Composite reading keyed by source field_name, in configured order."""

    prices: dict[str, SourceQuote]
    time_period: str
    captured_at: datetime = field(default_factory=utc_now)

    @property
    def primary(self) -> SourceQuote:
        """First successfully scraped source in configured order."""
        return next(iter(self.prices.values()))

    @property
    def price(self) -> Decimal:
        return self.primary.price


class BaseScraper(ABC):
    """Capability interface shared by every source family.

    Implementations compose a BrowserSessionManager and a PageExtractor
    rather than inheriting browser state.
    """

    @abstractmethod
    async def navigate(self, page, url: str) -> None:
        """Load ``url`` in ``page``."""
        pass

    @abstractmethod
    async def extract_first_match(self, page, selectors: list[str]):
        """Return the first candidate selector's text, or None."""
        pass

    @abstractmethod
    def parse_price(self, text: str) -> Decimal:
        """Convert extracted text into a positive price or raise PriceParseError."""
        pass

    @abstractmethod
    def build_observation(self, *args, **kwargs):
        """Assemble the observation for this source family."""
        pass

    @abstractmethod
    async def scrape(self):
        """Run the scrape through the retry engine and return an observation."""
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """Human-readable name of the source family (e.g. 'eastmoney.com')."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Tear down the browser session owned by this scraper."""
        pass

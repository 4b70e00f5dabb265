"""Prometheus metrics for the Gold Price Bot."""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("gold_price_bot", "Gold Price Bot application info")
app_info.info({"version": "0.1.0", "name": "gold-price-bot"})

# Scrape metrics
scrape_runs_total = Counter(
    "gold_scrape_runs_total",
    "Total number of scrape-and-save runs",
    ["mode", "status"],
)

scrape_attempts_total = Counter(
    "gold_scrape_attempts_total",
    "Total number of individual scrape attempts made by the retry engine",
    ["outcome"],
)

scrape_duration_seconds = Histogram(
    "gold_scrape_duration_seconds",
    "Time spent on one scrape run including retries",
    ["mode"],
    buckets=[1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

source_failures_total = Counter(
    "gold_source_failures_total",
    "Failed sources inside multi-source batches",
    ["field_name", "error_type"],
)

screenshots_captured_total = Counter(
    "gold_debug_screenshots_total",
    "Diagnostic screenshots written after hard failures",
    ["reason"],
)

# Browser metrics
browser_launches_total = Counter(
    "gold_browser_launches_total",
    "Headless browser processes launched",
)

# Persistence metrics
records_saved_total = Counter(
    "gold_records_saved_total",
    "Rows written to the price store",
    ["status"],
)

# Latest observed price per field
last_price_gauge = Gauge(
    "gold_last_price",
    "Most recently scraped price",
    ["field_name", "currency"],
)

SCAN_INTERVAL_SECONDS: int = 15       # how often each account loop looks for due paths
REQUEST_TIMEOUT_SECONDS: float = 30   # wall-clock cap for one page load
MAX_CONCURRENT_CHECKS: int = 50       # in-flight loads across all accounts
MAX_CHECKS_PER_ACCOUNT: int = 4       # in-flight loads against one account's domain
HISTORY_MAX_RECORDS: int = 500        # hard cap per path, on top of the plan retention window
MAX_JS_ERRORS_PER_CHECK: int = 20     # messages/details kept on a single CheckResult
DEFAULT_SCHEME: str = "https"

# Render pages in headless Chromium (needs `playwright install chromium`).
# When False, pages are fetched with plain aiohttp GETs and JS errors are not seen.
BROWSER_CHECKS_ENABLED: bool = False
BROWSER_NAVIGATION_TIMEOUT_MS: int = 25_000

USER_AGENT: str = "PageMonitor/1.0 (+page-health-checks)"

# accounts normally come from the settings collaborator; this list is only
# what main.py starts with.
ACCOUNTS: list[dict] = [
    {
        "account_id": "acme",
        "domain": "example.com",
        "plan": "starter",
        "frequency": "Every 30 minutes",
        "paths": ["/", "/pricing", "/about"],
        "alert_email": "ops@example.com",
    },
]

"""Constants for the registry dataset loader."""

from typing import Final


# crates.io listing endpoint; pages are built from this base
DEFAULT_REGISTRY_URL: Final[str] = "https://crates.io/api/v1/crates"

# Search term selecting the ecosystem
DEFAULT_QUERY: Final[str] = "ratatui"

# crates.io caps per_page at 100
DEFAULT_PER_PAGE: Final[int] = 100

DEFAULT_SNAPSHOT_FILENAME: Final[str] = "crates.json"
DEFAULT_ETAG_FILENAME: Final[str] = "etags.json"
DEFAULT_PAGES_DIRNAME: Final[str] = "pages"

# Age after which the cached snapshot is reported as stale
DEFAULT_STALE_AFTER_DAYS: Final[float] = 7.0

# Libraries maintained by the ratatui organization itself
DEFAULT_CORE_PACKAGES: Final[frozenset[str]] = frozenset(
    {
        "ratatui",
        "ratatui-core",
        "ratatui-widgets",
        "ratatui-crossterm",
        "ratatui-termion",
        "ratatui-termwiz",
        "ratatui-macros",
        "tui-widgets",
    }
)

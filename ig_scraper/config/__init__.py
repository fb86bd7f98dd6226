from ig_scraper.config.settings import (
    PrivateCheckPolicy,
    Settings,
    get_settings,
    parse_ig_accounts,
    reload_settings,
)

__all__ = [
    "PrivateCheckPolicy",
    "Settings",
    "get_settings",
    "parse_ig_accounts",
    "reload_settings",
]

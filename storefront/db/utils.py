from typing import Optional

ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def normalize_database_url(url: Optional[str]) -> Optional[str]:
    """Rewrite a plain DSN so it names an async driver; URLs that already name one pass through."""
    if not url:
        return None
    scheme, sep, rest = url.partition("://")
    if not sep or "+" in scheme:
        return url
    driver = ASYNC_DRIVERS.get(scheme)
    return f"{driver}://{rest}" if driver else url

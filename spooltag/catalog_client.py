"""Fetches the filament catalog from its published location and installs updates."""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile

import aiohttp

from .catalog import CatalogError, FilamentCatalog, parse_catalog_json
from .config import ReaderConfig
from .inventory_store import InventoryStore

logger = logging.getLogger(__name__)

META_CATALOG_VERSION = "catalog_version"
META_CATALOG_LANGUAGE = "catalog_language"


class CatalogClient:
    """Downloads the catalog JSON, trying the primary URL and then the mirror."""

    def __init__(self, config: ReaderConfig) -> None:
        self._primary_url = config.catalog_primary_url
        self._backup_url = config.catalog_backup_url
        self._timeout = aiohttp.ClientTimeout(total=10)
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _fetch(self, url: str) -> bytes | None:
        session = await self._get_session()
        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    logger.warning("GET %s returned HTTP %d", url, resp.status)
                    return None
                return await resp.read()
        except (aiohttp.ClientError, OSError) as e:
            logger.warning("Catalog source %s unreachable: %s", url, e)
            return None

    async def fetch_catalog(self) -> bytes | None:
        """Return the raw catalog bytes, or None if neither source answered."""
        for url in (self._primary_url, self._backup_url):
            if not url:
                continue
            content = await self._fetch(url)
            if content is not None:
                logger.debug("Fetched %d catalog bytes from %s", len(content), url)
                return content
        logger.error("Could not fetch the filament catalog from any source")
        return None


def catalog_version(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def _write_atomic(path: str, content: bytes) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=parent or ".", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def install_catalog(
    content: bytes,
    catalog: FilamentCatalog,
    store: InventoryStore,
    config: ReaderConfig,
) -> bool:
    """Install downloaded catalog bytes if they differ from the installed version.

    Returns True when the catalog was replaced. Invalid JSON raises
    CatalogError and leaves the installed catalog untouched.
    """
    version = catalog_version(content)
    language = config.catalog_language.lower()
    if store.get_meta(META_CATALOG_VERSION) == version and store.get_meta(META_CATALOG_LANGUAGE) == language:
        logger.info("Catalog unchanged (version %s), skipping update", version[:12])
        return False

    entries = parse_catalog_json(content.decode("utf-8"), language)
    if not entries:
        raise CatalogError("downloaded catalog has no entries")

    _write_atomic(config.catalog_file_path, content)
    catalog.replace(entries)
    store.set_meta(META_CATALOG_VERSION, version)
    store.set_meta(META_CATALOG_LANGUAGE, language)
    logger.info("Installed catalog version %s (%d entries)", version[:12], len(entries))
    return True


async def sync_catalog(
    client: CatalogClient,
    catalog: FilamentCatalog,
    store: InventoryStore,
    config: ReaderConfig,
) -> bool:
    """Fetch and install the latest catalog. Returns True if it changed."""
    content = await client.fetch_catalog()
    if content is None:
        return False
    return install_catalog(content, catalog, store, config)

"""Geo-IP resolution: ip-api.com lookups, optional GeoLite2 reader, long-lived cache."""

import asyncio
import logging

import geoip2.database
import geoip2.errors
import httpx

from pnodemap.cache import GEO_KEY_PREFIX, GEO_TTL, TTLCache
from pnodemap.models import GeoLocation

logger = logging.getLogger(__name__)

IP_API_URL = "http://ip-api.com"
IP_API_FIELDS = "status,country,countryCode,region,regionName,city,lat,lon,timezone,isp,query"


class MaxMindReader:
    """Offline lookups against MaxMind GeoLite2 database files.

    Missing files are tolerated: the reader logs a warning and the
    corresponding lookups return ``None``.

    Args:
        city_db_path: Path to ``GeoLite2-City.mmdb``, or ``None``.
        asn_db_path: Path to ``GeoLite2-ASN.mmdb``, or ``None``.  Only used
            to fill the ``isp`` field.
    """

    def __init__(
        self,
        city_db_path: str | None = None,
        asn_db_path: str | None = None,
    ) -> None:
        self._city_reader: geoip2.database.Reader | None = None
        self._asn_reader: geoip2.database.Reader | None = None

        if city_db_path:
            try:
                self._city_reader = geoip2.database.Reader(city_db_path)
                logger.debug("Opened GeoLite2-City DB: %s", city_db_path)
            except FileNotFoundError:
                logger.warning(
                    "GeoLite2-City DB not found at %s; offline lookups disabled",
                    city_db_path,
                )

        if asn_db_path:
            try:
                self._asn_reader = geoip2.database.Reader(asn_db_path)
                logger.debug("Opened GeoLite2-ASN DB: %s", asn_db_path)
            except FileNotFoundError:
                logger.warning(
                    "GeoLite2-ASN DB not found at %s; ISP field disabled",
                    asn_db_path,
                )

    @property
    def available(self) -> bool:
        """Whether a City database is open."""
        return self._city_reader is not None

    def close(self) -> None:
        """Close underlying database readers."""
        if self._city_reader:
            self._city_reader.close()
        if self._asn_reader:
            self._asn_reader.close()

    def lookup(self, ip: str) -> GeoLocation | None:
        """Look up *ip* in the City database (and ASN database for the ISP).

        Returns:
            A ``GeoLocation``, or ``None`` if no City DB is open or the
            address isn't in it.
        """
        if not self._city_reader:
            return None
        try:
            resp = self._city_reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            logger.debug("City lookup failed for %s", ip)
            return None

        subdivision = resp.subdivisions.most_specific
        return GeoLocation(
            ip=ip,
            country=resp.country.name,
            country_code=resp.country.iso_code,
            region=subdivision.iso_code,
            region_name=subdivision.name,
            city=resp.city.name,
            lat=resp.location.latitude,
            lon=resp.location.longitude,
            timezone=resp.location.time_zone,
            isp=self._lookup_isp(ip),
        )

    def _lookup_isp(self, ip: str) -> str | None:
        if not self._asn_reader:
            return None
        try:
            resp = self._asn_reader.asn(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            logger.debug("ASN lookup failed for %s", ip)
            return None
        return resp.autonomous_system_organization


class GeoResolver:
    """Resolve IP addresses to ``GeoLocation`` with a shared cache in front.

    Lookups go to the ip-api.com JSON endpoint, or to *reader* when one is
    given.  Successful results are cached under ``geo:<ip>`` for a week;
    failures are not cached, so the next call tries again.

    ``resolve`` never raises for lookup failures: a network error, a
    non-2xx status, a bad body or a ``"fail"`` status all yield ``None``.

    Reader lookups run in a worker thread so the event loop is not blocked.

    Args:
        cache: Cache shared with the rest of the pipeline.
        client: HTTP client for the lookup service.
        reader: Optional offline GeoLite2 reader used instead of *client*.
        service_url: Base URL of the ip-api compatible service.
    """

    def __init__(
        self,
        cache: TTLCache,
        client: httpx.AsyncClient | None = None,
        *,
        reader: MaxMindReader | None = None,
        service_url: str = IP_API_URL,
    ) -> None:
        if client is None and reader is None:
            raise ValueError("GeoResolver needs an HTTP client or a MaxMindReader")
        self._cache = cache
        self._client = client
        self._reader = reader
        self._service_url = service_url.rstrip("/")

    async def resolve(self, ip: str) -> GeoLocation | None:
        """Return the location of *ip*, or ``None`` if it can't be determined."""
        key = f"{GEO_KEY_PREFIX}{ip}"
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Geo cache hit for %s", ip)
            return cached

        if self._reader is not None:
            location = await asyncio.to_thread(self._reader.lookup, ip)
        else:
            location = await self._fetch(ip)

        if location is None:
            return None

        self._cache.set(key, location, GEO_TTL)
        return location

    async def _fetch(self, ip: str) -> GeoLocation | None:
        """Query the HTTP lookup service for *ip*."""
        url = f"{self._service_url}/json/{ip}"
        try:
            resp = await self._client.get(url, params={"fields": IP_API_FIELDS})
        except httpx.HTTPError as exc:
            logger.warning("Geo lookup for %s failed: %s", ip, type(exc).__name__)
            return None

        if not resp.is_success:
            logger.debug("Geo lookup for %s returned HTTP %d", ip, resp.status_code)
            return None

        try:
            data = resp.json()
        except ValueError:
            logger.debug("Geo lookup for %s returned a non-JSON body", ip)
            return None

        if not isinstance(data, dict) or data.get("status") != "success":
            logger.debug("Geo service could not locate %s", ip)
            return None

        return GeoLocation(
            ip=data.get("query") or ip,
            country=data.get("country"),
            country_code=data.get("countryCode"),
            region=data.get("region"),
            region_name=data.get("regionName"),
            city=data.get("city"),
            lat=data.get("lat"),
            lon=data.get("lon"),
            timezone=data.get("timezone"),
            isp=data.get("isp"),
        )

"""Subdomain based tenant resolution.

Every request is classified by host: an institution subdomain
(``<sub>.<root domain>``, or ``?subdomain=<sub>`` on development hosts) or
the main domain. `resolve_route` turns a (path, host) pair into either an
``allow`` decision carrying the tenant context or a ``redirect``.
"""
from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from typing import Dict, Optional
from urllib.parse import urlencode

from electivepro import config as app_config
from electivepro.db.repositories import institutions_repo
from electivepro.utils.logging import get_logger

LOG = get_logger("tenancy_service")

ACTION_ALLOW = "allow"
ACTION_REDIRECT = "redirect"
INSTITUTION_REQUIRED_PATH = "/institution-required"
_RESERVED_LABELS = {"", "www", "app", "api"}
_EXCLUDED_PREFIXES = ("/static/", "/api/subdomain/", "/api/auth/")
_EXCLUDED_PATHS = {"/favicon.ico", "/healthz", "/api/subdomain", "/api/auth"}
_PORTAL_PATHS = {
    "/admin": "/admin/login",
    "/student": "/student/login",
    "/manager": "/manager/login",
    "/super-admin": "/super-admin/login",
}


@dataclass(frozen=True)
class TenantContext:
    subdomain: str
    institution_id: int
    name: str
    favicon_url: Optional[str] = None
    primary_color: Optional[str] = None
    logo_url: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RouteDecision:
    action: str
    target: Optional[str] = None
    subdomain: Optional[str] = None
    tenant: Optional[TenantContext] = None

    @property
    def allowed(self) -> bool:
        return self.action == ACTION_ALLOW


@dataclass
class _LookupCacheEntry:
    tenant: Optional[TenantContext]
    fetched_at: float


_LOOKUP_CACHE: Dict[str, _LookupCacheEntry] = {}
_LOOKUP_CACHE_LOCK = threading.Lock()


class TenantLookupError(RuntimeError):
    """Raised when the institution lookup itself failed."""


def _strip_port(host: str) -> str:
    return (host or "").strip().lower().split(":", 1)[0]


def normalize_subdomain(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    cleaned = str(raw).strip().lower()
    return cleaned or None


def is_development_host(host: str) -> bool:
    hostname = (host or "").lower()
    return any(dev in hostname for dev in app_config.dev_hosts())


def extract_subdomain(host: str, query_subdomain: Optional[str] = None) -> Optional[str]:
    """Return the tenant subdomain addressed by the request, if any."""
    if is_development_host(host):
        return normalize_subdomain(query_subdomain)
    hostname = _strip_port(host)
    root = app_config.root_domain()
    suffix = "." + root
    if not hostname.endswith(suffix):
        return None
    label = hostname[: -len(suffix)].split(".", 1)[0]
    if label in _RESERVED_LABELS:
        return None
    return label


def is_main_domain(host: str, subdomain: Optional[str]) -> bool:
    hostname = _strip_port(host)
    if hostname in (app_config.main_host(), app_config.root_domain()):
        return True
    return is_development_host(host) and not subdomain


def is_excluded_path(path: str) -> bool:
    if path in _EXCLUDED_PATHS:
        return True
    return path.startswith(_EXCLUDED_PREFIXES)


def main_domain_url(path: str, host: str, scheme: str = "https") -> str:
    """Absolute URL of `path` on the main domain (same host in development)."""
    if is_development_host(host):
        return f"{scheme}://{(host or '').strip()}{path}"
    return f"https://{app_config.main_host()}{path}"


def institution_url(subdomain: str, host: Optional[str] = None, scheme: str = "http") -> str:
    """Entry URL of an institution portal."""
    if host and is_development_host(host):
        return f"{scheme}://{host.strip()}/?{urlencode({'subdomain': subdomain})}"
    return f"https://{subdomain}.{app_config.root_domain()}"


def tenant_path(path: str, host: str, subdomain: str) -> str:
    """Same-host path on a tenant; development keeps the subdomain parameter."""
    if is_development_host(host):
        return f"{path}?{urlencode({'subdomain': subdomain})}"
    return path


# ---------------- institution lookup cache ---------------

def _fetch_tenant(subdomain: str) -> Optional[TenantContext]:
    institution = institutions_repo.get_by_subdomain(subdomain, active_only=True)
    if institution is None:
        return None
    return TenantContext(
        subdomain=institution.subdomain,
        institution_id=int(institution.id),
        name=institution.name,
        favicon_url=institution.favicon_url,
        primary_color=institution.primary_color,
        logo_url=institution.logo_url,
    )


def lookup_institution(subdomain: str, *, force_refresh: bool = False) -> Optional[TenantContext]:
    """Active institution context for a subdomain, cached (hits and misses)."""
    key = normalize_subdomain(subdomain)
    if not key:
        return None
    ttl = app_config.subdomain_cache_ttl()
    now = time.time()
    with _LOOKUP_CACHE_LOCK:
        entry = _LOOKUP_CACHE.get(key)
        if entry and not force_refresh and now - entry.fetched_at < ttl:
            return entry.tenant
    try:
        tenant = _fetch_tenant(key)
    except Exception as exc:
        LOG.exception("Institution lookup failed subdomain=%s", key)
        raise TenantLookupError("lookup_failed") from exc
    if ttl > 0:
        with _LOOKUP_CACHE_LOCK:
            _LOOKUP_CACHE[key] = _LookupCacheEntry(tenant=tenant, fetched_at=now)
    return tenant


def invalidate(subdomain: Optional[str] = None) -> None:
    """Drop one cached lookup, or the whole cache when no subdomain is given."""
    with _LOOKUP_CACHE_LOCK:
        if subdomain is None:
            _LOOKUP_CACHE.clear()
        else:
            _LOOKUP_CACHE.pop(normalize_subdomain(subdomain) or "", None)


# ---------------- routing decision ---------------

def _redirect(target: str, subdomain: Optional[str] = None) -> RouteDecision:
    return RouteDecision(action=ACTION_REDIRECT, target=target, subdomain=subdomain)


def resolve_route(
    path: str,
    host: str,
    query_subdomain: Optional[str] = None,
    *,
    scheme: str = "https",
) -> RouteDecision:
    path = path or "/"
    subdomain = extract_subdomain(host, query_subdomain)

    if path == INSTITUTION_REQUIRED_PATH and subdomain:
        return _redirect(main_domain_url(INSTITUTION_REQUIRED_PATH, host, scheme), subdomain)

    if not subdomain and path.startswith(("/student/", "/manager/")):
        return _redirect(main_domain_url(INSTITUTION_REQUIRED_PATH, host, scheme))

    if subdomain and path.startswith(("/admin/", "/super-admin/")):
        return _redirect(main_domain_url(path, host, scheme), subdomain)

    if subdomain:
        try:
            tenant = lookup_institution(subdomain)
        except TenantLookupError:
            tenant = None
        if tenant is None:
            LOG.info("Unknown or inactive institution subdomain=%s", subdomain)
            return _redirect(main_domain_url(INSTITUTION_REQUIRED_PATH, host, scheme), subdomain)
        if path in ("/", "/student"):
            return _redirect(tenant_path("/student/login", host, subdomain), subdomain)
        if path == "/manager":
            return _redirect(tenant_path("/manager/login", host, subdomain), subdomain)
        return RouteDecision(action=ACTION_ALLOW, subdomain=subdomain, tenant=tenant)

    if path == "/" and is_main_domain(host, subdomain):
        return _redirect("/admin/login")
    portal = _PORTAL_PATHS.get(path[:-1] if len(path) > 1 and path.endswith("/") else path)
    if portal:
        return _redirect(portal)
    return RouteDecision(action=ACTION_ALLOW)


__all__ = [
    "ACTION_ALLOW",
    "ACTION_REDIRECT",
    "INSTITUTION_REQUIRED_PATH",
    "TenantContext",
    "RouteDecision",
    "TenantLookupError",
    "normalize_subdomain",
    "is_development_host",
    "extract_subdomain",
    "is_main_domain",
    "is_excluded_path",
    "main_domain_url",
    "institution_url",
    "tenant_path",
    "lookup_institution",
    "invalidate",
    "resolve_route",
]

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests
from django.conf import settings

from .forms import is_valid_ipv4

logger = logging.getLogger("ipsentinel.store")

PLACEHOLDER_URL = "YOUR_SUPABASE_PROJECT_URL"

NOT_CONFIGURED_ERROR = (
    "Supabase is not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY "
    "in the environment."
)
UNAVAILABLE_ERROR = "The IP registry backend is unreachable. Check the Supabase configuration."
DUPLICATE_IP_ERROR = "IP address already exists in the database."
DUPLICATE_USER_ERROR = "A user with this name already exists."
USER_IN_USE_ERROR = "This user has access log entries and cannot be deleted."
IP_NOT_FOUND_ERROR = "IP record not found. It may already have been deleted."
USER_NOT_FOUND_ERROR = "User not found. It may already have been deleted."

FRESH = "FRESH"
DUPLICATE = "DUPLICATE"

# PostgREST `in.(...)` filters travel in the query string.
LOOKUP_CHUNK = 100


def is_configured() -> bool:
    url = (settings.SUPABASE_URL or "").strip()
    key = (settings.SUPABASE_ANON_KEY or "").strip()
    return bool(url.startswith("http") and url != PLACEHOLDER_URL and key)


def _headers(prefer: Optional[str] = None) -> Dict[str, str]:
    key = settings.SUPABASE_ANON_KEY
    headers = {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Accept": "application/json",
    }
    if prefer:
        headers["Prefer"] = prefer
    return headers


def _error_body(resp: requests.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {"message": (resp.text or "").strip()}
    return body if isinstance(body, dict) else {"message": str(body)}


def _content_range_total(resp: requests.Response) -> Optional[int]:
    # "0-49/601", or "*/0" when nothing matched
    content_range = resp.headers.get("Content-Range") or ""
    _, _, total = content_range.partition("/")
    return int(total) if total.isdigit() else None


def call_store(
    method: str,
    table: str,
    params: Optional[Dict[str, str]] = None,
    json: Any = None,
    prefer: Optional[str] = None,
) -> Dict[str, Any]:

    if not is_configured():
        return {"success": False, "error": NOT_CONFIGURED_ERROR, "config_error": True}

    url = f"{settings.SUPABASE_URL.rstrip('/')}/rest/v1/{table}"

    try:
        resp = requests.request(
            method,
            url,
            params=params,
            json=json,
            headers=_headers(prefer),
            timeout=settings.SUPABASE_TIMEOUT_SEC,
        )
    except (requests.ConnectionError, requests.Timeout) as e:
        logger.error("store %s %s unreachable: %s", method, table, e)
        return {"success": False, "error": UNAVAILABLE_ERROR, "config_error": True}
    except requests.RequestException as e:
        logger.error("store %s %s failed: %s", method, table, e)
        return {"success": False, "error": str(e)}

    if resp.status_code in (401, 403):
        logger.error("store %s %s rejected the API key (HTTP %s)", method, table, resp.status_code)
        return {
            "success": False,
            "error": f"The IP registry backend rejected the API key (HTTP {resp.status_code}).",
            "config_error": True,
        }

    if resp.status_code >= 400:
        body = _error_body(resp)
        code = str(body.get("code") or "")
        message = body.get("message") or f"HTTP {resp.status_code}"
        result = {"success": False, "error": message, "status": resp.status_code, "code": code}
        if code == "23505" or (resp.status_code == 409 and code != "23503"):
            result["duplicate"] = True
        elif code == "23503":
            result["in_use"] = True
        else:
            logger.warning("store %s %s -> HTTP %s: %s", method, table, resp.status_code, message)
        return result

    result = {"success": True, "data": []}
    total = _content_range_total(resp)
    if total is not None:
        result["total"] = total

    if resp.status_code == 204 or not resp.content:
        return result

    try:
        result["data"] = resp.json()
    except ValueError:
        logger.error("store %s %s returned non-JSON body", method, table)
        return {"success": False, "error": "Invalid response from the IP registry backend."}

    return result


# ==========================
# IP registry
# ==========================

def find_ip(address: str) -> Dict[str, Any]:
    resp = call_store("GET", settings.IP_TABLE, params={
        "select": "*",
        "address": f"eq.{address}",
        "limit": "1",
    })
    if not resp.get("success"):
        return resp
    rows = resp.get("data") or []
    return {"success": True, "record": rows[0] if rows else None}


def list_ips() -> Dict[str, Any]:
    resp = call_store("GET", settings.IP_TABLE, params={
        "select": "*",
        "order": "created_at.desc",
    })
    if not resp.get("success"):
        return resp
    return {"success": True, "ips": resp.get("data") or []}


def add_ip(address: str, added_by: str = "admin") -> Dict[str, Any]:
    resp = call_store(
        "POST",
        settings.IP_TABLE,
        json={"address": address, "added_by": added_by},
        prefer="return=representation",
    )
    if resp.get("success"):
        rows = resp.get("data") or []
        logger.info("ip %s registered by %s", address, added_by)
        return {"success": True, "record": rows[0] if rows else {"address": address, "added_by": added_by}}

    if resp.get("duplicate"):
        return {"success": False, "duplicate": True, "error": DUPLICATE_IP_ERROR}
    return resp


def delete_ip(record_id) -> Dict[str, Any]:
    resp = call_store(
        "DELETE",
        settings.IP_TABLE,
        params={"id": f"eq.{record_id}"},
        prefer="return=representation",
    )
    if not resp.get("success"):
        return resp
    if not resp.get("data"):
        return {"success": False, "not_found": True, "error": IP_NOT_FOUND_ERROR}

    logger.info("ip record %s deleted", record_id)
    return {"success": True, "record": resp["data"][0]}


def _existing_addresses(addresses: List[str]) -> Dict[str, Any]:
    found = set()
    for i in range(0, len(addresses), LOOKUP_CHUNK):
        chunk = addresses[i:i + LOOKUP_CHUNK]
        resp = call_store("GET", settings.IP_TABLE, params={
            "select": "address",
            "address": "in.(" + ",".join(chunk) + ")",
        })
        if not resp.get("success"):
            return resp
        found.update(row.get("address") for row in resp.get("data") or [])
    return {"success": True, "addresses": found}


def bulk_add_ips(lines: Iterable[str], added_by: str = "admin") -> Dict[str, Any]:
    """
    Register every valid address from ``lines``.

    Blank lines are ignored. Invalid addresses count as ``errors``; addresses
    already in the registry, or repeated earlier in the same input, count as
    ``existing``.
    """
    errors = 0
    existing = 0
    candidates: List[str] = []
    seen = set()

    for line in lines:
        address = (line or "").strip()
        if not address:
            continue
        if not is_valid_ipv4(address):
            errors += 1
            continue
        if address in seen:
            existing += 1
            continue
        seen.add(address)
        candidates.append(address)

    if not candidates:
        return {"success": True, "added": 0, "existing": existing, "errors": errors}

    lookup = _existing_addresses(candidates)
    if not lookup.get("success"):
        return lookup

    known = lookup["addresses"]
    fresh = [a for a in candidates if a not in known]
    existing += len(candidates) - len(fresh)

    if fresh:
        resp = call_store(
            "POST",
            settings.IP_TABLE,
            json=[{"address": a, "added_by": added_by} for a in fresh],
            prefer="return=minimal",
        )
        if not resp.get("success"):
            if resp.get("duplicate"):
                resp["error"] = DUPLICATE_IP_ERROR
            return resp

    logger.info("bulk import: added=%s existing=%s errors=%s", len(fresh), existing, errors)
    return {"success": True, "added": len(fresh), "existing": existing, "errors": errors}


# ==========================
# Check + register
# ==========================

def record_access(user_id, address: str, result: str) -> Dict[str, Any]:
    resp = call_store("POST", settings.ACCESS_LOG_TABLE, json={
        "user_id": user_id,
        "ip_address": address,
        "result": result,
    })
    if not resp.get("success"):
        logger.warning("access log for %s (user=%s) not written: %s", address, user_id, resp.get("error"))
    return resp


def check_and_register(address: str, user: Dict[str, Any]) -> Dict[str, Any]:
    """
    Classify ``address`` as FRESH or DUPLICATE.

    ``user`` is an ``app_users`` row. A fresh address is registered on the
    spot, attributed to the user's name. Every classified check is written
    to the access log under the user's id.
    """
    user_id = user.get("id")
    user_name = user.get("name") or ""

    lookup = find_ip(address)
    if not lookup.get("success"):
        return lookup

    record = lookup.get("record")
    if record is not None:
        result = DUPLICATE
    else:
        added = add_ip(address, added_by=user_name)
        if added.get("success"):
            result = FRESH
            record = added.get("record")
        elif added.get("duplicate"):
            # registered by someone else between lookup and insert
            result = DUPLICATE
        else:
            return added

    logger.info("check %s by %s -> %s", address, user_name, result)
    record_access(user_id, address, result)

    return {"success": True, "status": result, "address": address, "record": record}


# ==========================
# Users
# ==========================

def list_users() -> Dict[str, Any]:
    resp = call_store("GET", settings.USER_TABLE, params={
        "select": "*",
        "order": "name.asc",
    })
    if not resp.get("success"):
        return resp
    return {"success": True, "users": resp.get("data") or []}


def get_user(user_id) -> Dict[str, Any]:
    resp = call_store("GET", settings.USER_TABLE, params={
        "select": "*",
        "id": f"eq.{user_id}",
        "limit": "1",
    })
    if not resp.get("success"):
        return resp
    rows = resp.get("data") or []
    return {"success": True, "user": rows[0] if rows else None}


def create_user(name: str) -> Dict[str, Any]:
    resp = call_store(
        "POST",
        settings.USER_TABLE,
        json={"name": name},
        prefer="return=representation",
    )
    if resp.get("success"):
        rows = resp.get("data") or []
        logger.info("user %s created", name)
        return {"success": True, "user": rows[0] if rows else {"name": name}}

    if resp.get("duplicate"):
        return {"success": False, "duplicate": True, "error": DUPLICATE_USER_ERROR}
    return resp


def delete_user(user_id) -> Dict[str, Any]:
    resp = call_store(
        "DELETE",
        settings.USER_TABLE,
        params={"id": f"eq.{user_id}"},
        prefer="return=representation",
    )
    if not resp.get("success"):
        if resp.get("in_use"):
            return {"success": False, "in_use": True, "error": USER_IN_USE_ERROR}
        return resp
    if not resp.get("data"):
        return {"success": False, "not_found": True, "error": USER_NOT_FOUND_ERROR}

    logger.info("user %s deleted", user_id)
    return {"success": True, "user": resp["data"][0]}


# ==========================
# Access logs
# ==========================

ACCESS_LOG_RESULTS = (FRESH, DUPLICATE)


def _ilike_term(text: str) -> str:
    # `*` is the PostgREST wildcard; the others are filter syntax
    return "".join(ch for ch in text if ch not in "*%,()\\")


def list_access_logs(q: str = "", result: str = "", offset: int = 0, limit: int = 50) -> Dict[str, Any]:
    """
    One page of the access log, newest first, with the user name joined.

    ``q`` matches part of the address and ``result`` narrows to FRESH or
    DUPLICATE. Filtering and paging run in the store; ``total`` is the
    number of matching rows across all pages.
    """
    offset = max(offset, 0)
    params = {
        "select": f"*,{settings.USER_TABLE}(name)",
        "order": "created_at.desc,id.desc",
        "offset": str(offset),
        "limit": str(limit),
    }
    term = _ilike_term((q or "").strip())
    if term:
        params["ip_address"] = f"ilike.*{term}*"
    if result in ACCESS_LOG_RESULTS:
        params["result"] = f"eq.{result}"

    resp = call_store("GET", settings.ACCESS_LOG_TABLE, params=params, prefer="count=exact")
    if not resp.get("success"):
        return resp

    logs = []
    for row in resp.get("data") or []:
        user = row.get(settings.USER_TABLE) or {}
        row["user_name"] = user.get("name") if isinstance(user, dict) else None
        logs.append(row)

    total = resp.get("total")
    if total is None:
        total = offset + len(logs)
    return {"success": True, "logs": logs, "total": total}

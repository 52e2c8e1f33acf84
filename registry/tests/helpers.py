import json
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

import requests

STORE_SETTINGS = {
    "SUPABASE_URL": "https://registry.example.supabase.co",
    "SUPABASE_ANON_KEY": "test-anon-key",
}


def make_response(status=200, body=None):
    resp = requests.Response()
    resp.status_code = status
    resp.encoding = "utf-8"
    if body is not None:
        resp._content = json.dumps(body).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    else:
        resp._content = b""
    return resp


def _prefer(headers):
    return (headers or {}).get("Prefer") or ""


class FakeStore:
    """In-memory stand-in for the PostgREST endpoints the store client calls."""

    UNIQUE = {"ip_records": "address", "app_users": "name"}

    def __init__(self):
        self.tables = {"ip_records": [], "app_users": [], "access_logs": []}
        self.calls = []
        self._next_id = 1
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def seed(self, table, **row):
        return self._insert(table, row)

    def _insert(self, table, row):
        row = dict(row)
        row.setdefault("id", self._next_id)
        self._next_id += 1
        self._clock += timedelta(seconds=1)
        row.setdefault("created_at", self._clock.isoformat())
        self.tables[table].append(row)
        return row

    @staticmethod
    def _matches(row, params):
        for key, cond in params.items():
            if key in ("select", "order", "limit", "offset"):
                continue
            value = str(row.get(key))
            if cond.startswith("eq."):
                if value != cond[3:]:
                    return False
            elif cond.startswith("in.("):
                if value not in cond[4:-1].split(","):
                    return False
            elif cond.startswith("ilike."):
                pattern = re.escape(cond[6:]).replace(r"\*", ".*")
                if not re.fullmatch(pattern, value, re.IGNORECASE):
                    return False
        return True

    def __call__(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append((method, url, dict(params or {}), json))
        table = urlparse(url).path.rsplit("/", 1)[-1]
        params = dict(params or {})
        rows = self.tables[table]

        if method == "GET":
            found = [dict(r) for r in rows if self._matches(r, params)]
            # apply the order keys last-to-first so the first key wins
            for key in reversed([k for k in params.get("order", "").split(",") if k]):
                field, direction = key.split(".")
                found.sort(key=lambda r: (r.get(field) is None, r.get(field)), reverse=(direction == "desc"))
            if "app_users(name)" in params.get("select", ""):
                names = {u["id"]: u["name"] for u in self.tables["app_users"]}
                for r in found:
                    r["app_users"] = {"name": names[r["user_id"]]} if r.get("user_id") in names else None
            total = len(found)
            offset = int(params.get("offset") or 0)
            found = found[offset:]
            if params.get("limit"):
                found = found[: int(params["limit"])]
            resp = make_response(200, found)
            if "count=exact" in _prefer(headers):
                last = f"{offset}-{offset + len(found) - 1}" if found else "*"
                resp.headers["Content-Range"] = f"{last}/{total}"
            return resp

        if method == "POST":
            items = json if isinstance(json, list) else [json]
            unique = self.UNIQUE.get(table)
            if unique:
                taken = {r[unique] for r in rows}
                for item in items:
                    if item[unique] in taken:
                        return make_response(409, {
                            "code": "23505",
                            "message": f'duplicate key value violates unique constraint "{table}_{unique}_key"',
                        })
                    taken.add(item[unique])
            created = [self._insert(table, item) for item in items]
            if "return=representation" in _prefer(headers):
                return make_response(201, created)
            return make_response(201)

        if method == "DELETE":
            doomed = [r for r in rows if self._matches(r, params)]
            if table == "app_users":
                referenced = {e.get("user_id") for e in self.tables["access_logs"]}
                if any(r["id"] in referenced for r in doomed):
                    return make_response(409, {"code": "23503", "message": "violates foreign key constraint"})
            self.tables[table] = [r for r in rows if r not in doomed]
            if "return=representation" in _prefer(headers):
                return make_response(200, doomed)
            return make_response(204)

        return make_response(405, {"message": "method not allowed"})

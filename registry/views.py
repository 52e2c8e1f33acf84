from __future__ import annotations

from functools import wraps
import csv
import logging
import secrets
from typing import Any, Dict, List

from django.conf import settings
from django.contrib import messages
from django.core.paginator import Paginator
from django.db.models import Q
from django.http import HttpResponse
from django.shortcuts import render, redirect
from django.urls import Resolver404, resolve
from django.utils.dateparse import parse_datetime
from django.utils.http import urlencode
from django.views.decorators.http import require_POST

from .context_processors import ADMIN_SESSION_KEY, ADMIN_USERNAME_KEY
from .forms import AddIpForm, AdminLoginForm, AppUserForm, BulkImportForm, IpCheckForm
from .models import AuditLog
from . import store_client

logger = logging.getLogger("ipsentinel.views")

CHECKER_SESSION_KEY = "checker_id"
IMPORT_STATS_SESSION_KEY = "import_stats"


class CheckStatus:
    IDLE = "IDLE"
    FRESH = store_client.FRESH
    DUPLICATE = store_client.DUPLICATE
    ERROR = "ERROR"


STATUS_CARDS: Dict[str, Dict[str, str]] = {
    CheckStatus.FRESH: {
        "title": "Fresh IP Address",
        "desc": "This IP address was not found in our database. It has now been registered.",
        "tone": "fresh",
        "icon": "✔",
    },
    CheckStatus.DUPLICATE: {
        "title": "Duplicate IP Detected",
        "desc": "This IP address already exists in the database.",
        "tone": "duplicate",
        "icon": "✖",
    },
    CheckStatus.ERROR: {
        "title": "Verification Failed",
        "desc": "An error occurred while checking the IP address.",
        "tone": "error",
        "icon": "!",
    },
}

RESULT_FILTERS = ("ALL", CheckStatus.FRESH, CheckStatus.DUPLICATE)


# ==========================
# Utils: IP + Audit
# ==========================

def get_client_ip(request) -> str:
    xff = request.META.get("HTTP_X_FORWARDED_FOR")
    if xff:
        return xff.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")


def log_event(request, action: str, detail: str = "") -> None:
    AuditLog.objects.create(
        actor=(request.session.get(ADMIN_USERNAME_KEY) or "")[:50],
        action=(action or "")[:100],
        detail=(detail or "")[:255],
        ip_address=get_client_ip(request) or None,
    )


def _with_dates(rows: List[Dict[str, Any]], field: str = "created_at") -> List[Dict[str, Any]]:
    for row in rows:
        raw = row.get(field)
        dt = None
        if raw:
            try:
                dt = parse_datetime(str(raw))
            except ValueError:
                dt = None
        row[f"{field}_dt"] = dt
    return rows


def _store_error(request, resp: Dict[str, Any], default: str):
    """Return the configuration banner text, or queue a flash message."""
    if resp.get("config_error"):
        return resp.get("error") or default
    messages.error(request, resp.get("error") or default)
    return None


# ==========================
# Guard : console
# ==========================

def admin_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.session.get(ADMIN_SESSION_KEY):
            messages.error(request, "Please sign in to access the console.")
            return redirect("admin_login")
        return view_func(request, *args, **kwargs)
    return wrapper


# ==========================
# Check page
# ==========================

def ip_check_view(request):
    users_resp = store_client.list_users()
    users = users_resp.get("users", []) if users_resp.get("success") else []
    config_error = None
    if not users_resp.get("success"):
        config_error = _store_error(request, users_resp, "Unable to load the list of users.")

    status = CheckStatus.IDLE
    searched_ip = ""

    if request.method == "POST":
        form = IpCheckForm(request.POST, users=users)
        if form.is_valid():
            address = form.cleaned_data["address"]
            user = form.selected_user()
            request.session[CHECKER_SESSION_KEY] = str(user["id"])
            searched_ip = address

            resp = store_client.check_and_register(address, user)
            if resp.get("success"):
                status = resp["status"]
            else:
                status = CheckStatus.ERROR
                logger.error("check of %s failed: %s", address, resp.get("error"))
                if resp.get("config_error"):
                    config_error = resp.get("error")
    else:
        form = IpCheckForm(initial={"user_id": request.session.get(CHECKER_SESSION_KEY)}, users=users)

    return render(
        request,
        "registry/ip_check.html",
        {
            "form": form,
            "status": status,
            "card": STATUS_CARDS.get(status),
            "searched_ip": searched_ip,
            "config_error": config_error,
            "has_users": bool(users),
        },
    )


# ==========================
# Console login / logout
# ==========================

def _credentials_ok(username: str, password: str) -> bool:
    user_ok = secrets.compare_digest(username.encode(), settings.ADMIN_USERNAME.encode())
    pass_ok = secrets.compare_digest(password.encode(), settings.ADMIN_PASSWORD.encode())
    return user_ok and pass_ok


def admin_login_view(request):
    if request.session.get(ADMIN_SESSION_KEY):
        return redirect("admin_dashboard")

    if request.method == "POST":
        form = AdminLoginForm(request.POST)
        if form.is_valid():
            username = form.cleaned_data["username"]
            if _credentials_ok(username, form.cleaned_data["password"]):
                request.session.cycle_key()
                request.session[ADMIN_SESSION_KEY] = True
                request.session[ADMIN_USERNAME_KEY] = username
                log_event(request, "ADMIN_LOGIN")
                logger.info("console login by %s", username)
                return redirect("admin_dashboard")

            form.add_error(None, "Invalid credentials. Please try again.")
            log_event(request, "ADMIN_LOGIN_FAILED", username)
            logger.warning("failed console login for %r from %s", username, get_client_ip(request))
    else:
        form = AdminLoginForm()

    return render(request, "registry/admin_login.html", {"form": form})


@require_POST
def admin_logout_view(request):
    if request.session.get(ADMIN_SESSION_KEY):
        log_event(request, "ADMIN_LOGOUT")
    request.session.pop(ADMIN_SESSION_KEY, None)
    request.session.pop(ADMIN_USERNAME_KEY, None)
    request.session.pop(IMPORT_STATS_SESSION_KEY, None)
    return redirect("admin_login")


# ==========================
# Console : IP registry
# ==========================

@admin_required
def admin_dashboard(request):
    resp = store_client.list_ips()
    ips = _with_dates(resp.get("ips", [])) if resp.get("success") else []

    fetch_error = None
    if not resp.get("success"):
        fetch_error = _store_error(request, resp, "Failed to load the IP records.")

    return render(
        request,
        "registry/admin_dashboard.html",
        {
            "ips": ips,
            "fetch_error": fetch_error,
            "load_failed": not resp.get("success"),
            "add_form": AddIpForm(),
            "import_form": BulkImportForm(),
            "upload_stats": request.session.pop(IMPORT_STATS_SESSION_KEY, None),
        },
    )


@admin_required
@require_POST
def admin_add_ip(request):
    form = AddIpForm(request.POST)
    if not form.is_valid():
        for err in form.errors.get("address", []):
            messages.error(request, err)
        return redirect("admin_dashboard")

    address = form.cleaned_data["address"]
    resp = store_client.add_ip(address, added_by=request.session.get(ADMIN_USERNAME_KEY) or "admin")
    if resp.get("success"):
        messages.success(request, f"{address} added to the database.")
        log_event(request, "ADMIN_ADD_IP", address)
    else:
        messages.error(request, resp.get("error", "Failed to add IP"))

    return redirect("admin_dashboard")


@admin_required
@require_POST
def admin_delete_ip(request, record_id: int):
    resp = store_client.delete_ip(record_id)
    if resp.get("success"):
        address = (request.POST.get("address") or "").strip()
        messages.success(request, f"{address or 'Record'} removed.")
        log_event(request, "ADMIN_DELETE_IP", address or str(record_id))
    else:
        messages.error(request, resp.get("error", "Failed to delete IP"))

    return redirect("admin_dashboard")


@admin_required
@require_POST
def admin_bulk_import(request):
    form = BulkImportForm(request.POST, request.FILES)
    if not form.is_valid():
        for err in form.errors.get("ip_file", []):
            messages.error(request, err)
        return redirect("admin_dashboard")

    resp = store_client.bulk_add_ips(form.lines, added_by=request.session.get(ADMIN_USERNAME_KEY) or "admin")
    if not resp.get("success"):
        messages.error(request, resp.get("error", "Failed to process file"))
        return redirect("admin_dashboard")

    stats = {"added": resp["added"], "existing": resp["existing"], "errors": resp["errors"]}
    request.session[IMPORT_STATS_SESSION_KEY] = stats
    log_event(
        request,
        "ADMIN_BULK_IMPORT",
        f"{form.cleaned_data['ip_file'].name}: added={stats['added']} existing={stats['existing']} errors={stats['errors']}",
    )
    return redirect("admin_dashboard")


@admin_required
def admin_export_ips_csv(request):
    resp = store_client.list_ips()
    if not resp.get("success"):
        messages.error(request, resp.get("error", "Failed to load the IP records."))
        return redirect("admin_dashboard")

    response = HttpResponse(content_type="text/csv; charset=utf-8")
    response["Content-Disposition"] = 'attachment; filename="ip_records.csv"'

    writer = csv.writer(response)
    writer.writerow(["id", "address", "created_at", "added_by"])
    for r in resp.get("ips", []):
        writer.writerow([r.get("id"), r.get("address"), r.get("created_at"), r.get("added_by")])

    return response


# ==========================
# Console : users
# ==========================

@admin_required
def admin_users(request):
    if request.method == "POST":
        form = AppUserForm(request.POST)
        if form.is_valid():
            name = form.cleaned_data["name"]
            resp = store_client.create_user(name)
            if resp.get("success"):
                messages.success(request, f"User {name} created.")
                log_event(request, "ADMIN_CREATE_USER", name)
                return redirect("admin_users")
            form.add_error("name", resp.get("error", "Failed to create user"))
    else:
        form = AppUserForm()

    resp = store_client.list_users()
    users = _with_dates(resp.get("users", [])) if resp.get("success") else []
    fetch_error = None
    if not resp.get("success"):
        fetch_error = _store_error(request, resp, "Failed to load users.")

    return render(
        request,
        "registry/admin_users.html",
        {"form": form, "users": users, "fetch_error": fetch_error, "load_failed": not resp.get("success")},
    )


@admin_required
@require_POST
def admin_delete_user(request, user_id: int):
    resp = store_client.delete_user(user_id)
    if resp.get("success"):
        name = (request.POST.get("name") or "").strip()
        messages.success(request, f"User {name or user_id} removed.")
        log_event(request, "ADMIN_DELETE_USER", name or str(user_id))
    else:
        messages.error(request, resp.get("error", "Failed to delete user"))

    return redirect("admin_users")


# ==========================
# Console : access logs + journal
# ==========================

ACCESS_LOGS_PER_PAGE = 50


class StoreWindow:
    """
    One fetched page of a store listing, sized by the store's row count.

    ``Paginator`` only slices the rows of the page it renders, so a window
    holding those rows plus the total stands in for the full listing.
    """

    def __init__(self, rows: List[Dict[str, Any]], total: int, offset: int):
        self.rows = rows
        self.total = total
        self.offset = offset

    def count(self) -> int:
        return self.total

    def __len__(self) -> int:
        return self.total

    def __getitem__(self, key):
        if isinstance(key, slice):
            start = (key.start or 0) - self.offset
            stop = (key.stop if key.stop is not None else self.total) - self.offset
            return self.rows[max(start, 0):max(stop, 0)]
        return self.rows[key - self.offset]


def _page_number(raw) -> int:
    try:
        return max(int(raw), 1)
    except (TypeError, ValueError):
        return 1


@admin_required
def admin_access_logs(request):
    q = (request.GET.get("q") or "").strip()
    result_filter = (request.GET.get("result") or "ALL").upper()
    if result_filter not in RESULT_FILTERS:
        result_filter = "ALL"
    store_result = "" if result_filter == "ALL" else result_filter

    per_page = ACCESS_LOGS_PER_PAGE
    number = _page_number(request.GET.get("page"))
    offset = (number - 1) * per_page
    resp = store_client.list_access_logs(q=q, result=store_result, offset=offset, limit=per_page)

    # past the end: show the last page instead
    if resp.get("success") and not resp.get("logs") and offset and resp.get("total"):
        number = (resp["total"] - 1) // per_page + 1
        offset = (number - 1) * per_page
        resp = store_client.list_access_logs(q=q, result=store_result, offset=offset, limit=per_page)

    fetch_error = None
    if resp.get("success"):
        window = StoreWindow(_with_dates(resp.get("logs", [])), resp.get("total", 0), offset)
    else:
        fetch_error = _store_error(request, resp, "Failed to load access logs.")
        window = StoreWindow([], 0, 0)
        number = 1

    paginator = Paginator(window, per_page)
    page_obj = paginator.get_page(number)

    return render(
        request,
        "registry/admin_access_logs.html",
        {
            "page_obj": page_obj,
            "logs": page_obj,
            "fetch_error": fetch_error,
            "filters": {"q": q, "result": result_filter},
            "query": urlencode({"q": q, "result": result_filter}) + "&",
            "result_choices": RESULT_FILTERS,
        },
    )


@admin_required
def admin_security_journal(request):
    q = (request.GET.get("q") or "").strip()

    logs = AuditLog.objects.all().order_by("-created_at")
    if q:
        logs = logs.filter(Q(action__icontains=q) | Q(detail__icontains=q) | Q(ip_address__icontains=q))

    paginator = Paginator(logs, 50)
    page_obj = paginator.get_page(request.GET.get("page"))

    return render(
        request,
        "registry/admin_journal.html",
        {"page_obj": page_obj, "logs": page_obj, "filters": {"q": q}, "query": urlencode({"q": q}) + "&"},
    )


# ==========================
# Unknown paths
# ==========================

def fallback_redirect(request, *args, **kwargs):
    path = request.path_info
    if not path.endswith("/"):
        try:
            match = resolve(path + "/")
        except Resolver404:
            match = None
        if match is not None and match.url_name != "fallback":
            return redirect(path + "/")
    return redirect("ip_check")

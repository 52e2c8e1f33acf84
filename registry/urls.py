from django.urls import path, re_path
from . import views

urlpatterns = [
    path("", views.ip_check_view, name="ip_check"),

    path("admin/login/", views.admin_login_view, name="admin_login"),
    path("admin/logout/", views.admin_logout_view, name="admin_logout"),
    path("admin/", views.admin_dashboard, name="admin_dashboard"),

    path("admin/ips/add/", views.admin_add_ip, name="admin_add_ip"),
    path("admin/ips/import/", views.admin_bulk_import, name="admin_bulk_import"),
    path("admin/ips/export/csv/", views.admin_export_ips_csv, name="admin_export_ips_csv"),
    path("admin/ips/<int:record_id>/delete/", views.admin_delete_ip, name="admin_delete_ip"),

    path("admin/users/", views.admin_users, name="admin_users"),
    path("admin/users/<int:user_id>/delete/", views.admin_delete_user, name="admin_delete_user"),

    path("admin/access-logs/", views.admin_access_logs, name="admin_access_logs"),
    path("admin/journal/", views.admin_security_journal, name="admin_security_journal"),

    re_path(r"^.*$", views.fallback_redirect, name="fallback"),
]

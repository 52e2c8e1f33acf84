from django.utils import timezone

ADMIN_SESSION_KEY = "admin_session"
ADMIN_USERNAME_KEY = "admin_username"


def console(request):
    session = getattr(request, "session", None) or {}
    return {
        "is_admin": bool(session.get(ADMIN_SESSION_KEY)),
        "admin_username": session.get(ADMIN_USERNAME_KEY),
        "current_year": timezone.now().year,
    }

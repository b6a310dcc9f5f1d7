"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles, local cache keys and role-gated routes so the
  session manager, the web layer and the tests cannot drift apart.
- Keep terms aligned with the glossary: Session, Role, Demo account,
  Fallback Session.
"""

from __future__ import annotations

from typing import Optional

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "teacher", "admin"})
DEFAULT_ROLE = "student"

# Where a Session came from.
SOURCE_REMOTE = "remote"
SOURCE_DEMO = "demo"
SOURCE_LOCAL_FALLBACK = "local-fallback"
SESSION_SOURCES = frozenset({SOURCE_REMOTE, SOURCE_DEMO, SOURCE_LOCAL_FALLBACK})

# Local key-value cache. Values are opaque strings or JSON blobs.
USER_KEY = "loopverse_user"
ROLE_KEY = "loopverse_user_role"
SELECTED_ROLE_KEY = "selectedRole"
PROFILE_KEY = "userProfile"
SETTINGS_KEY = "userSettings"

# The selected role is a preference and survives sign-out.
SIGN_OUT_KEYS = (USER_KEY, ROLE_KEY, PROFILE_KEY, SETTINGS_KEY)

DASHBOARD_ROUTES = {
    "admin": "/dashboards/adminDashboard",
    "teacher": "/dashboards/teacherDashboard",
    "student": "/dashboards/studentDashboard",
}
ROLE_SELECTION_ROUTE = "/roleSelectionScreen"
AUTH_CHOICE_ROUTE = "/authChoiceScreen"

SIGNED_OUT_SCREENS = ("index", "loginScreen", "signupScreen", "forgotPassword")

ROLE_SCREENS = {
    "admin": (
        "dashboards/adminDashboard",
        "admin/dashboard",
        "admin/manageUsers",
        "admin/manageCourses",
        "admin/analytics",
        "admin/manageEvents",
        "admin/aiChatbot",
        "admin/appSettings",
    ),
    "teacher": (
        "dashboards/teacherDashboard",
        "teacher/dashboard",
        "teacher/liveSessions",
        "teacher/manageCourses",
        "teacher/studentProgress",
        "teacher/events",
        "teacher/aiAssistant",
        "teacher/profile",
    ),
    "student": (
        "dashboards/studentDashboard",
        "student/dashboard",
        "student/learning",
        "student/events",
        "student/progress",
        "student/gamification",
        "student/profile",
        "student/aiSupport",
    ),
}

SHARED_SCREENS = (
    "shared/communication",
    "shared/aiChatbot",
    "shared/announcements",
    "homeScreen",
    "profileScreen",
    "settingsScreen",
)


def normalize_role(value: object) -> Optional[str]:
    """Return the canonical role for `value` or None when it is not a known role."""
    if not isinstance(value, str):
        return None
    role = value.strip().lower()
    return role if role in ALLOWED_ROLES else None


def dashboard_route(role: Optional[str]) -> str:
    """Map a role to its dashboard; absent or unknown roles go to role selection."""
    return DASHBOARD_ROUTES.get(normalize_role(role) or "", ROLE_SELECTION_ROUTE)


def screens_for(signed_in: bool, role: Optional[str]) -> list[str]:
    """Return the screens reachable in the given authentication state.

    Behavior:
        - Signed out: only the entry and auth screens.
        - Signed in without a role: role selection plus shared screens.
        - Signed in with a role: that role's screens plus shared screens.
    """
    if not signed_in:
        return list(SIGNED_OUT_SCREENS)
    canonical = normalize_role(role)
    screens: list[str] = []
    if canonical is None:
        screens.append(ROLE_SELECTION_ROUTE.lstrip("/"))
    else:
        screens.extend(ROLE_SCREENS[canonical])
    screens.extend(SHARED_SCREENS)
    return screens


def can_open_screen(signed_in: bool, role: Optional[str], screen: str) -> bool:
    return (screen or "").lstrip("/") in screens_for(signed_in, role)


__all__ = [
    "ALLOWED_ROLES",
    "DEFAULT_ROLE",
    "SOURCE_REMOTE",
    "SOURCE_DEMO",
    "SOURCE_LOCAL_FALLBACK",
    "SESSION_SOURCES",
    "USER_KEY",
    "ROLE_KEY",
    "SELECTED_ROLE_KEY",
    "PROFILE_KEY",
    "SETTINGS_KEY",
    "SIGN_OUT_KEYS",
    "DASHBOARD_ROUTES",
    "ROLE_SELECTION_ROUTE",
    "AUTH_CHOICE_ROUTE",
    "normalize_role",
    "dashboard_route",
    "screens_for",
    "can_open_screen",
]

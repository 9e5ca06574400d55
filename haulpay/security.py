# -*- coding: utf-8 -*-
from functools import wraps
from flask import redirect, url_for, request, flash
from flask_login import current_user

ROLE_DRIVER = "Driver"
PERM_UPDATE_RATES = "clients.update_rates"

# endpoints reachable without a session
PUBLIC_ENDPOINTS = {"auth.login", "static"}
# the only pages a driver may open on the web
DRIVER_ENDPOINTS = {"auth.app_required", "auth.logout"}


def _safe(url_name: str, default: str = "/"):
    try:
        return url_for(url_name)
    except Exception:
        return default


def route_guard():
    """
    before_request hook.
    No session -> login page. Drivers only get the "use the mobile app" page.
    """
    endpoint = request.endpoint or ""
    if endpoint in PUBLIC_ENDPOINTS:
        return None
    if not current_user.is_authenticated:
        return redirect(_safe("auth.login", "/login"))
    if current_user.role == ROLE_DRIVER and endpoint not in DRIVER_ENDPOINTS:
        return redirect(_safe("auth.app_required", "/driver/app-required"))
    return None


def permission_required(perm: str):
    """
    Not signed in -> login page.
    Token lacks ``perm`` -> back to the payroll page with a warning.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return redirect(_safe("auth.login", "/login"))
            if not current_user.has_permission(perm):
                flash("You do not have permission to open this page.", "warning")
                return redirect(_safe("payroll.index", "/"))
            return f(*args, **kwargs)
        return wrapper
    return decorator

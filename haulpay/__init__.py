# -*- coding: utf-8 -*-
import logging
from datetime import datetime, date
from flask import Flask, flash, redirect, url_for
from flask_login import current_user, logout_user

from .backend import parse_timestamp
from .config import Config
from .extensions import login_manager
from .errors import Unauthorized
from . import session as op_session
from .security import route_guard, ROLE_DRIVER

# blueprints
from .auth import auth_bp
from .modules.payroll import bp as payroll_bp
from .modules.rates import bp as rates_bp

log = logging.getLogger(__name__)


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    logging.getLogger("haulpay").setLevel(level)
    # httpx logs every request at INFO, including query strings
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(overrides=None):
    app = Flask(
        __name__,
        template_folder="templates",
        static_folder="static",
    )
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    _configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    login_manager.init_app(app)
    app.before_request(route_guard)

    # --- jinja filters ---
    @app.template_filter("fmt_date")
    def fmt_date(value, fmt="%Y-%m-%d"):
        if value in (None, ""):
            return ""
        try:
            if isinstance(value, (datetime, date)):
                return value.strftime(fmt)
            s = str(value)
            try:
                return parse_timestamp(s).strftime(fmt)
            except ValueError:
                return date.fromisoformat(s[:10]).strftime(fmt)
        except ValueError:
            return str(value)

    @app.template_filter("fmt_money")
    def fmt_money(v):
        try:
            return f"₱{float(v):,.2f}"
        except (TypeError, ValueError):
            return str(v)

    @app.template_filter("fmt_kg")
    def fmt_kg(v):
        try:
            x = float(v)
        except (TypeError, ValueError):
            return str(v)
        if x.is_integer():
            return f"{int(x):,} kg"
        return f"{x:,.2f} kg"

    @app.template_filter("dt_local")
    def dt_local(value):
        if value in (None, ""):
            return ""
        if not isinstance(value, (datetime, date)):
            try:
                value = parse_timestamp(value)
            except ValueError:
                return str(value)
        return value.strftime("%b %d, %Y %H:%M")

    # --- operator for the toolbar ---
    @app.context_processor
    def inject_operator():
        if not current_user.is_authenticated:
            return {}
        return {"operator": current_user}

    # --- backend rejected the token: end the session ---
    @app.errorhandler(Unauthorized)
    def on_unauthorized(e):
        log.info("backend answered 401; clearing session")
        logout_user()
        op_session.clear()
        flash(str(e), "warning")
        return redirect(url_for("auth.login"))

    # --- blueprints ---
    app.register_blueprint(auth_bp)
    app.register_blueprint(payroll_bp)
    app.register_blueprint(rates_bp)

    # --- home ---
    @app.route("/")
    def home():
        if current_user.role == ROLE_DRIVER:
            return redirect(url_for("auth.app_required"))
        return redirect(url_for("payroll.index"))

    return app

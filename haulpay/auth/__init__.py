# -*- coding: utf-8 -*-
import logging

from flask import Blueprint, render_template, request, redirect, url_for, flash
from flask_login import current_user, login_user, logout_user, login_required

from .. import session as op_session
from ..backend import client_for
from ..errors import HaulpayError
from ..modules.rates import AUDIT_CHANNEL, audit_sequences
from ..security import ROLE_DRIVER

log = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, template_folder="../templates/auth")


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")
        if not username or not password:
            flash("Username and password are required", "danger")
            return render_template("auth/login.html", username=username)
        try:
            with client_for(None) as api:
                data = api.login(username, password)
            ctx = op_session.SessionContext.from_login(username, data)
        except HaulpayError as e:
            log.info("login failed for %s: %s", username, e)
            flash(str(e) or "Invalid username or password", "danger")
            return render_template("auth/login.html", username=username)

        op_session.store(ctx)
        login_user(op_session.Operator(ctx), remember=False)
        log.info("operator %s signed in (role=%s)", username, ctx.role or "-")
        if ctx.role == ROLE_DRIVER:
            return redirect(url_for("auth.app_required"))
        return redirect(url_for("home"))
    return render_template("auth/login.html")


@auth_bp.route("/logout")
@login_required
def logout():
    audit_sequences.forget((current_user.get_id(), AUDIT_CHANNEL))
    logout_user()
    op_session.clear()
    return redirect(url_for("auth.login"))


@auth_bp.route("/driver/app-required")
@login_required
def app_required():
    return render_template("driver/app_required.html")

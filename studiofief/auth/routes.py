from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_user, logout_user

from .. import login_manager
from ..errors import UnauthenticatedError, ValidationError
from ..models import User
from ..serializers import user_json
from ..utils import _clean, read_json

auth_bp = Blueprint("auth", __name__)


@login_manager.unauthorized_handler
def unauthorized():
    raise UnauthenticatedError("Authentification requise.")


@auth_bp.route("/login", methods=["POST"])
def login():
    data = read_json()
    email = _clean(data.get("email")).lower()
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Email et mot de passe requis.")

    user = User.query.filter_by(email=email, is_active=True).first()
    if not user or not user.check_password(password):
        current_app.logger.warning("failed login for %s", email)
        raise UnauthenticatedError("Identifiants invalides.")

    login_user(user)
    current_app.logger.info("user %s logged in", user.id)
    return jsonify({"item": user_json(user)})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({"ok": True})


@auth_bp.route("/me", methods=["GET"])
def me():
    if not current_user.is_authenticated:
        raise UnauthenticatedError("Authentification requise.")
    return jsonify({"item": user_json(current_user)})

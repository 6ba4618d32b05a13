from flask import Blueprint, jsonify

from ..billing.numbering import get_settings
from ..billing.scope import unit_of_work
from ..billing.settings import update_settings
from ..serializers import settings_json
from ..utils import read_json, require_role

settings_bp = Blueprint("settings", __name__)


@settings_bp.route("/settings", methods=["GET"])
@require_role("VIEWER")
def show_settings(ctx):
    with unit_of_work():
        settings = get_settings(ctx.business_id)
    return jsonify({"item": settings_json(settings)})


@settings_bp.route("/settings", methods=["PATCH"])
@require_role("ADMIN")
def patch_settings(ctx):
    settings = update_settings(ctx, read_json())
    return jsonify({"item": settings_json(settings)})

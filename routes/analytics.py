from flask import Blueprint, jsonify

from models import School
from utils.analytics import dashboard_analytics
from utils.errors import NotFoundError

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api")


@dashboard_bp.route('/dashboard/analytics')
def analytics():
    # Summary, monthly trend (last two years) and per-school totals
    return jsonify({"success": True, "data": dashboard_analytics()})


@dashboard_bp.route('/schools')
def schools():
    return jsonify({"success": True, "data": [s.to_dict() for s in School.get_active()]})


@dashboard_bp.route('/schools/<name>')
def school_detail(name):
    school = School.get_by_name(name)
    if school is None:
        raise NotFoundError(f"school {name} not found", "Sekolah tidak ditemukan", {"name": name})
    return jsonify({"success": True, "data": school.to_dict()})

# backend/tierstock/routes/reports.py
"""
Read-only reporting routes.

Date windows are inclusive calendar dates: ?start=YYYY-MM-DD&end=YYYY-MM-DD.
"""
from flask import Blueprint, jsonify, request

from ..services import reporting_service
from ..services.incentive_service import reward_progress_for_role
from .common import date_range_from_args, error_response, optional_int


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/products")
def product_report_route():
    try:
        actor_id = optional_int(request.args, "actor_id")
        if actor_id is None:
            raise KeyError("actor_id")
        report = reporting_service.product_report(
            actor_id=actor_id,
            date_range=date_range_from_args(request.args),
            branch_id=optional_int(request.args, "branch_id"),
        )
    except Exception as e:
        return error_response(e)

    return jsonify(report), 200


@reports_bp.get("/marketers/<int:marketer_id>")
def marketer_stats_route(marketer_id: int):
    try:
        report = reporting_service.marketer_report(
            marketer_id=marketer_id,
            date_range=date_range_from_args(request.args),
        )
    except Exception as e:
        return error_response(e)

    return jsonify(report), 200


@reports_bp.get("/marketers/<int:marketer_id>/pnl")
def marketer_pnl_route(marketer_id: int):
    try:
        report = reporting_service.marketer_pnl_report(
            marketer_id=marketer_id,
            date_range=date_range_from_args(request.args),
            branch_id=optional_int(request.args, "branch_id"),
        )
    except Exception as e:
        return error_response(e)

    return jsonify(report), 200


@reports_bp.get("/tier-sales")
def tier_sales_route():
    try:
        seller_id = optional_int(request.args, "seller_id")
        if seller_id is None:
            raise KeyError("seller_id")
        rows = reporting_service.tier_sales_report(
            seller_id=seller_id,
            date_range=date_range_from_args(request.args),
        )
    except Exception as e:
        return error_response(e)

    return jsonify({"buyers": rows}), 200


@reports_bp.get("/rewards")
def reward_progress_route():
    """
    Reward achievement for every actor of a role.

    month=0 (default) is the whole year.
    """
    try:
        role = request.args.get("role")
        seller_role = request.args.get("seller_role")
        year = optional_int(request.args, "year")
        if not role:
            raise KeyError("role")
        if not seller_role:
            raise KeyError("seller_role")
        if year is None:
            raise KeyError("year")
        rows = reward_progress_for_role(
            role=role,
            month=optional_int(request.args, "month") or 0,
            year=year,
            seller_role=seller_role,
        )
    except Exception as e:
        return error_response(e)

    return jsonify({"actors": rows}), 200

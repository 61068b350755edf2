"""HTTP routes for reports."""

import io

from flask import request, send_file
from flask_login import login_required

from modules.core.validation import parse_choice, parse_id
from permissions import current_company_id, current_user_id
from utils import json_ok, page_args, paginate, request_json

from . import bp
from .models import REPORT_TYPES
from .services import ReportService, history_query, render_csv, render_xlsx

_FILE_FORMATS = {
    "csv": (render_csv, "text/csv; charset=utf-8"),
    "xlsx": (render_xlsx, "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
}


@bp.route("/generate", methods=["POST"])
@login_required
def generate_report():
    report = ReportService().generate(current_company_id(), request_json(), user_id=current_user_id())
    if report["format"] == "json":
        return json_ok(report, 201)

    render, mimetype = _FILE_FORMATS[report["format"]]
    filename = f"{report['type']}_{report['generated_at'][:19].replace(':', '').replace('-', '')}.{report['format']}"
    response = send_file(io.BytesIO(render(report)), mimetype=mimetype, as_attachment=True,
                         download_name=filename)
    response.headers["X-Report-Id"] = str(report["report_id"])
    return response


@bp.route("/history", methods=["GET"])
@login_required
def report_history():
    args = request.args
    filters = {
        "report_type": parse_choice(args, "report_type", REPORT_TYPES),
        "user_id": parse_id(args, "user_id"),
    }
    page, limit = page_args(args, default_limit=20)
    items, pagination = paginate(history_query(current_company_id(), filters), page, limit)
    return json_ok([r.to_dict() for r in items], pagination=pagination)


@bp.route("/<int:report_id>", methods=["GET"])
@login_required
def get_report(report_id: int):
    return json_ok(ReportService().get(current_company_id(), report_id).to_dict(with_data=True))


@bp.route("/<int:report_id>", methods=["DELETE"])
@login_required
def delete_report(report_id: int):
    ReportService().delete(current_company_id(), report_id)
    return json_ok({"id": report_id})

from flask import Blueprint, Response, current_app, jsonify, request

from utils.csv_io import (
    export_receipts,
    export_students,
    import_receipts,
    import_students,
    receipt_template,
    student_template,
)
from utils.store import RecordNotFound
from utils.timezone_helpers import local_today

import_export_bp = Blueprint('import_export', __name__, url_prefix='/import-export')

TEMPLATES = {
    "students": ("student_import_template.csv", student_template),
    "receipts": ("receipt_import_template.csv", receipt_template),
}
IMPORTERS = {"students": import_students, "receipts": import_receipts}
EXPORTERS = {"students": export_students, "receipts": export_receipts}


def _csv_response(body, filename):
    return Response(body.encode(), headers={
        "Content-Type": "text/csv",
        "Content-Disposition": f"attachment; filename={filename}",
    })


def _kind(kind, table):
    if kind not in table:
        raise RecordNotFound(f"Unknown data type: {kind}")
    return table[kind]


def _uploaded_text():
    upload = request.files.get('file')
    if upload is not None:
        if upload.filename and not upload.filename.lower().endswith('.csv'):
            raise ValueError("Please upload a CSV file")
        raw = upload.read()
    else:
        raw = request.get_data()
    if not raw:
        raise ValueError("No CSV data supplied")
    try:
        return raw.decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValueError("CSV must be UTF-8 encoded")


@import_export_bp.route('/templates/<kind>')
def download_template(kind):
    filename, build = _kind(kind, TEMPLATES)
    return _csv_response(build(), filename)


@import_export_bp.route('/import/<kind>', methods=['POST'])
def import_csv(kind):
    importer = _kind(kind, IMPORTERS)
    results = importer(_uploaded_text())
    current_app.logger.info(
        "Imported %s %s (%s rows rejected)", results["success"], kind, len(results["errors"])
    )
    return jsonify({"ok": not results["errors"], **results})


@import_export_bp.route('/export/<kind>')
def export_csv(kind):
    exporter = _kind(kind, EXPORTERS)
    filename = f"{kind}_export_{local_today().isoformat()}.csv"
    return _csv_response(exporter(), filename)

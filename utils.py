import os
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from math import ceil

from flask import jsonify, request
from werkzeug.utils import secure_filename

from modules.core.errors import InvalidInput
from modules.core.validation import parse_int

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif'}


def allowed_file(filename):
    """Check if the file has an allowed extension."""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def handle_file_upload(file, upload_folder, prefix=''):
    """Save an uploaded image into upload_folder and return its path."""
    if not file or not file.filename:
        raise InvalidInput('photo', 'file is required')
    if not allowed_file(file.filename):
        raise InvalidInput('photo', 'allowed formats: png, jpg, jpeg, gif', file.filename)
    filename = secure_filename(f"{prefix}{datetime.utcnow():%Y%m%d%H%M%S%f}_{file.filename}")
    os.makedirs(upload_folder, exist_ok=True)
    filepath = os.path.join(upload_folder, filename)
    file.save(filepath)
    return filepath


def money(value):
    """Decimal columns are rendered as floats in JSON payloads."""
    if value is None:
        return None
    return float(value)


def iso(value):
    return value.isoformat() if value is not None else None


def as_decimal(value):
    if value is None:
        return Decimal('0')
    return value if isinstance(value, Decimal) else Decimal(str(value))


def round_money(value):
    """Round a computed amount to the two places of the Numeric columns."""
    return as_decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def paginate(query, page, limit):
    """Apply page/limit to a query and return (items, pagination dict)."""
    total = query.order_by(None).count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    return items, {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': ceil(total / limit) if limit else 0,
    }


def json_ok(data=None, status=200, **extra):
    """Success envelope shared by every JSON endpoint."""
    payload = {'success': True, 'data': data}
    payload.update(extra)
    return jsonify(payload), status


def request_json():
    """Body of a JSON request; anything but an object is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput('body', 'must be a JSON object')
    return data


def page_args(args, default_limit=50, max_limit=100):
    """page/limit query arguments, limit capped at max_limit."""
    page = parse_int(args, 'page', default=1, minimum=1)
    limit = parse_int(args, 'limit', default=default_limit, minimum=1)
    return page, min(limit, max_limit)

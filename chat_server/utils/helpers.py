from datetime import datetime

from flask import jsonify


def respond_error(message_or_dict, status=400, kind=None):
    """Return a standardized error response."""
    if isinstance(message_or_dict, dict):
        body = {'success': False, 'errors': message_or_dict}
    else:
        body = {'success': False, 'error': message_or_dict}
    if kind:
        body['kind'] = kind
    return jsonify(body), status


def respond_success(payload=None, status=200):
    if payload is None:
        payload = {}
    body = {'success': True}
    if isinstance(payload, dict):
        body.update(payload)
    else:
        body['data'] = payload
    return jsonify(body), status


def normalize_datetime_fields(doc):
    """Recursively convert datetime objects in a dict/list to isoformat strings (in-place)"""
    if isinstance(doc, dict):
        for k, v in doc.items():
            if isinstance(v, datetime):
                doc[k] = v.isoformat()
            elif isinstance(v, (dict, list)):
                normalize_datetime_fields(v)
    elif isinstance(doc, list):
        for i in range(len(doc)):
            v = doc[i]
            if isinstance(v, datetime):
                doc[i] = v.isoformat()
            elif isinstance(v, (dict, list)):
                normalize_datetime_fields(v)
    return doc


def parse_pagination(args, default_limit=50, max_limit=200):
    """Parse ``page``/``limit`` query args. Returns (page, limit, errors)."""
    errors = {}
    page = 1
    limit = default_limit
    try:
        limit = int(args.get('limit', default_limit))
        if limit < 1 or limit > max_limit:
            errors['limit'] = f'limit must be between 1 and {max_limit}'
    except (TypeError, ValueError):
        errors['limit'] = 'limit must be an integer'
    try:
        page = int(args.get('page', 1))
        if page < 1:
            errors['page'] = 'page must be >= 1'
    except (TypeError, ValueError):
        errors['page'] = 'page must be an integer'
    if errors:
        return None, None, errors
    return page, limit, None

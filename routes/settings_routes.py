from flask import Blueprint, g, jsonify, request

settings_bp = Blueprint('settings', __name__, url_prefix='/settings')


def _json_object(what, required=False):
    data = request.get_json(silent=True)
    if data is None and not required:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


@settings_bp.route('/')
def get_settings():
    return jsonify(g.session_context.to_dict())


@settings_bp.route('/preferences', methods=['PUT', 'PATCH'])
def update_preferences():
    g.session_context.update_preferences(**_json_object("preferences"))
    return jsonify({"ok": True, "preferences": g.session_context.preferences})


@settings_bp.route('/dashboard', methods=['PUT', 'PATCH'])
def update_dashboard_settings():
    g.session_context.update_dashboard_settings(**_json_object("dashboard settings"))
    return jsonify({"ok": True, "dashboard_settings": g.session_context.dashboard_settings})


@settings_bp.route('/search-history')
def search_history():
    return jsonify({"search_history": g.session_context.search_history})


@settings_bp.route('/search-history', methods=['DELETE'])
def clear_search_history():
    g.session_context.clear_search_history()
    return jsonify({"ok": True})


@settings_bp.route('/filters/<page>', methods=['PUT'])
def save_filters(page):
    g.session_context.save_filters(page, _json_object("filters", required=True))
    return jsonify({"ok": True, "filters": g.session_context.filters})

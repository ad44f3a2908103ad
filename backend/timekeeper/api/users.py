from flask import Blueprint, jsonify, request
from timekeeper import db
from timekeeper.models import User, XPHistory, level_for_xp, xp_for_level


users = Blueprint('users', __name__)


@users.route('/<int:user_id>/xp', methods=['GET'])
def get_xp_stats(user_id):
    user = db.get_or_404(User, user_id)
    total_xp = user.total_xp or 0
    level = level_for_xp(total_xp)
    return jsonify({
        'user_id': user.id,
        'total_xp': total_xp,
        'level': level,
        'xp_for_current_level': xp_for_level(level),
        'xp_to_next_level': xp_for_level(level + 1) - total_xp,
    })


@users.route('/<int:user_id>/xp/history', methods=['GET'])
def get_xp_history(user_id):
    db.get_or_404(User, user_id)
    try:
        limit = min(max(int(request.args.get('limit', 50)), 1), 100)
        offset = max(int(request.args.get('offset', 0)), 0)
    except (TypeError, ValueError):
        return jsonify({'error': 'limit and offset must be integers'}), 400
    history = (
        XPHistory.query.filter_by(user_id=user_id)
        .order_by(XPHistory.created_at.desc(), XPHistory.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return jsonify({'history': [h.to_dict() for h in history]})

"""
Health check endpoint
"""
from datetime import datetime, timezone

from flask import Blueprint, jsonify

bp = Blueprint('health', __name__)


@bp.route('/health', methods=['GET'])
def health_check():
    """Liveness check; the configuration store is not contacted"""
    return jsonify({
        'status': 'healthy',
        'message': 'API is online',
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }), 200

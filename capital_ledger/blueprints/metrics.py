"""
/metrics endpoint exposing the ledger and request counters to Prometheus.
Not authenticated: restrict it to the monitoring network in production.
"""
from flask import Blueprint, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from capital_ledger.utils.metrics import registry

metrics_bp = Blueprint('metrics', __name__)


@metrics_bp.route('/metrics')
def metrics():
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)

"""
Reel Flow Development Collector.

A small Flask app that accepts the batches the analytics queue sends and
keeps them in memory, so a flow can be played end to end without the
production backend.

Run with:
    python -m reel_flow collector --port 5000

Or with Flask:
    flask --app reel_flow.web.app run --port 5000
"""
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Optional

from flask import Flask, jsonify, request

from ..models.analytics import AnalyticsEventType

logger = logging.getLogger(__name__)

# Create Flask app
app = Flask(__name__)

# Received events per visit id
visits: dict[str, list[dict[str, Any]]] = {}

# Maximum number of visits to keep in memory
MAX_VISITS = 500

EVENT_TYPES = {t.value for t in AnalyticsEventType}


# =============================================================================
# ROUTES
# =============================================================================

@app.route('/api/health')
def health():
    """Health check endpoint."""
    return jsonify({
        'status': 'ok',
        'visits': len(visits),
        'timestamp': datetime.now().isoformat(),
    })


@app.route('/analytics/visit/<visit_id>/events', methods=['POST'])
def receive_events(visit_id: str):
    """
    Accept a batch of events for one visit.

    Body: ``{"events": [{"eventType": ..., "slideId": ..., ...}, ...]}``.
    The whole batch is rejected with 400 if any event is malformed.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not isinstance(payload.get('events'), list):
        return jsonify({'error': 'Body must be an object with an "events" list'}), 400

    events = payload['events']
    for position, event in enumerate(events):
        error = _validate_event(event)
        if error:
            logger.warning(f"[{visit_id}] Rejected batch: event {position} {error}")
            return jsonify({'error': f'Event {position}: {error}'}), 400

    received_at = datetime.now().isoformat()
    stored = visits.setdefault(visit_id, [])
    stored.extend({**event, 'receivedAt': received_at} for event in events)
    _cleanup_old_visits()

    logger.info(f"[{visit_id}] Received {len(events)} events ({len(stored)} total)")
    return jsonify({'received': len(events)})


@app.route('/analytics/visit/<visit_id>/events', methods=['GET'])
def list_events(visit_id: str):
    """Return every event received for a visit."""
    if visit_id not in visits:
        return jsonify({'error': 'Visit not found'}), 404

    return jsonify({
        'visit_id': visit_id,
        'events': visits[visit_id],
    })


# =============================================================================
# HELPERS
# =============================================================================

def _validate_event(event: Any) -> Optional[str]:
    """Return a description of what is wrong with ``event``, if anything."""
    if not isinstance(event, dict):
        return 'is not an object'
    if event.get('eventType') not in EVENT_TYPES:
        return f"has unknown eventType {event.get('eventType')!r}"
    slide_id = event.get('slideId')
    if slide_id is not None and not isinstance(slide_id, str):
        return 'has a non-string slideId'
    duration = event.get('duration')
    if duration is not None and (isinstance(duration, bool) or not isinstance(duration, int) or duration < 0):
        return 'has an invalid duration'
    metadata = event.get('metadata')
    if metadata is not None and not isinstance(metadata, dict):
        return 'has non-object metadata'
    return None


def _cleanup_old_visits():
    """Forget the oldest visits when the limit is exceeded."""
    while len(visits) > MAX_VISITS:
        oldest = next(iter(visits))
        del visits[oldest]


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'
    app.run(host='0.0.0.0', port=port, debug=debug, threaded=True)

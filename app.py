"""
Lab Presence Tracker - Main Application
Author: LabTrack Team
Date: October 2026

This module is the Flask entry point of the lab tracker. It wires the backend,
the scan pipeline and the member tools into one explicit context per
application and exposes them as a JSON API for scanner stations and the
admin dashboard.

Features:
- QR scan processing for lab entry and exit
- Occupancy summary and recent activity
- Member profile, presence history and QR code issuance
- Log export to CSV/Excel
- Live log feed over server-sent events
"""

import base64
import io
import json
import logging
import queue
import re
from dataclasses import dataclass
from datetime import date

from flask import Blueprint, Flask, Response, current_app, jsonify, request, send_file

from config import init_config
from labtrack.modules.attendance_manager import AttendanceManager
from labtrack.modules.database_manager import DatabaseManager
from labtrack.modules.exceptions import BackendUnavailable, MemberNotFound, MemberValidationError
from labtrack.modules.member_manager import MemberManager
from labtrack.modules.models import ScanAccepted, ScanRejectedThrottled, ScanRejectedUnknownMember
from labtrack.modules.notification_system import NotificationSystem
from labtrack.modules.qr_generator import QRGenerator
from labtrack.modules.report_generator import ReportGenerator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)
logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

STATION_PATTERN = re.compile(r'^[A-Za-z0-9_.:-]{1,64}$')


@dataclass
class LabContext:
    """Components shared by the request handlers of one application."""
    notifications: NotificationSystem
    db: DatabaseManager
    qr_generator: QRGenerator
    attendance: AttendanceManager
    members: MemberManager
    reports: ReportGenerator

    def close(self):
        self.db.close_all_connections()


def build_context(settings) -> LabContext:
    """Create the tracker components from a Flask config mapping."""
    notifications = NotificationSystem()
    db = DatabaseManager(
        settings['DATABASE_PATH'],
        timeout=settings['BACKEND_TIMEOUT_SECONDS'],
        notification_system=notifications
    )
    qr_generator = QRGenerator(
        prefix=settings['QR_PAYLOAD_PREFIX'],
        settings={
            'box_size': settings['QR_CODE_SIZE'],
            'border': settings['QR_CODE_BORDER'],
            'fill_color': settings['QR_CODE_FILL_COLOR'],
            'back_color': settings['QR_CODE_BACK_COLOR']
        }
    )
    attendance = AttendanceManager(
        db,
        qr_generator,
        cooldown_ms=settings['SCAN_COOLDOWN_MS'],
        timeout=settings['BACKEND_TIMEOUT_SECONDS'],
        strict_member_check=settings['STRICT_MEMBER_CHECK'],
        recent_logs_limit=settings['RECENT_LOGS_LIMIT'],
        max_stations=settings['MAX_STATIONS']
    )
    members = MemberManager(
        db,
        qr_generator,
        history_limit=settings['MEMBER_HISTORY_LIMIT'],
        qr_codes_folder=settings['QR_CODES_FOLDER']
    )
    reports = ReportGenerator(db, attendance, output_dir=settings['REPORTS_FOLDER'])

    if settings['SEED_DEMO_MEMBERS']:
        members.seed_demo_members()

    return LabContext(notifications, db, qr_generator, attendance, members, reports)


def create_app(config_name=None, overrides=None):
    """
    Application factory.

    Args:
        config_name (str): Key into ``config.config``; FLASK_ENV when omitted
        overrides (dict): Settings applied on top of the configuration class
    """
    app = Flask(__name__)
    init_config(app, config_name, overrides)

    app.extensions['labtrack'] = build_context(app.config)
    app.register_blueprint(api)

    logger.info(f"Lab tracker initialized with database {app.config['DATABASE_PATH']}")
    return app


def get_context() -> LabContext:
    return current_app.extensions['labtrack']


def _error(message, status, error_type=None):
    body = {'success': False, 'message': message}
    if error_type:
        body['error_type'] = error_type
    return jsonify(body), status


def _scan_status(outcome):
    if isinstance(outcome, ScanAccepted):
        return 200
    if isinstance(outcome, ScanRejectedThrottled):
        return 429
    if isinstance(outcome, ScanRejectedUnknownMember):
        return 404
    if outcome.error_type == 'conflicting_write':
        return 409
    return 503


@api.route('/scan', methods=['POST'])
def process_scan():
    """Process a QR code scan and toggle the member's lab presence"""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return _error('Expected a JSON object', 400, 'bad_request')

    payload = data.get('payload') or data.get('qr_code') or ''
    station = data.get('station') or current_app.config['DEFAULT_STATION']
    if not isinstance(payload, str) or not isinstance(station, str):
        return _error('payload and station must be strings', 400, 'bad_request')

    payload = payload.strip()
    station = station.strip()
    if not payload:
        return _error('No QR code data provided', 400, 'bad_request')
    if not STATION_PATTERN.match(station):
        return _error('Invalid station ID', 400, 'bad_request')

    outcome = get_context().attendance.process_scan(payload, station)
    return jsonify(outcome.to_dict()), _scan_status(outcome)


@api.route('/dashboard')
def dashboard():
    """Occupancy summary and recent activity for the admin dashboard"""
    try:
        return jsonify(get_context().attendance.get_dashboard())
    except BackendUnavailable as e:
        logger.error(f"Dashboard error: {str(e)}")
        return _error('Error loading dashboard data', 503, 'backend_unavailable')


@api.route('/logs/recent')
def recent_logs():
    limit = request.args.get('limit', type=int)
    if limit is not None and limit <= 0:
        return _error('limit must be positive', 400, 'bad_request')

    try:
        return jsonify(get_context().attendance.get_recent_activity(limit))
    except BackendUnavailable as e:
        logger.error(f"Recent logs error: {str(e)}")
        return _error('Error loading logs', 503, 'backend_unavailable')


@api.route('/logs/today')
def today_logs():
    try:
        return jsonify(get_context().attendance.get_today_activity())
    except BackendUnavailable as e:
        logger.error(f"Today's logs error: {str(e)}")
        return _error('Error loading logs', 503, 'backend_unavailable')


@api.route('/members')
def list_members():
    """All registered members, sorted by name"""
    try:
        return jsonify([member.to_dict() for member in get_context().db.list_members()])
    except BackendUnavailable as e:
        logger.error(f"Member list error: {str(e)}")
        return _error('Failed to load members', 503, 'backend_unavailable')


@api.route('/members/<external_id>')
def member_profile(external_id):
    """Member profile with current presence and recent history"""
    ctx = get_context()
    try:
        member = ctx.members.get_member_by_external_id(external_id)
        return jsonify({
            'member': member.to_dict(),
            'presence': ctx.attendance.get_member_presence(member),
            'history': [entry.to_dict() for entry in ctx.members.get_history(member.id)]
        })
    except MemberNotFound as e:
        return _error(str(e), 404, 'unknown_member')
    except BackendUnavailable as e:
        logger.error(f"Profile error for {external_id}: {str(e)}")
        return _error('Failed to load profile data', 503, 'backend_unavailable')


@api.route('/members/<external_id>', methods=['PATCH'])
def update_member(external_id):
    """Edit profile fields"""
    ctx = get_context()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _error('Expected a JSON object', 400, 'bad_request')

    try:
        member = ctx.members.get_member_by_external_id(external_id)
        updated = ctx.members.update_profile(member.id, data)
        return jsonify({'success': True, 'message': 'Profile updated', 'member': updated.to_dict()})
    except MemberNotFound as e:
        return _error(str(e), 404, 'unknown_member')
    except MemberValidationError as e:
        return _error(str(e), 400, 'validation_error')
    except BackendUnavailable as e:
        logger.error(f"Profile update error for {external_id}: {str(e)}")
        return _error('Failed to update profile', 503, 'backend_unavailable')


@api.route('/members/<external_id>/qr', methods=['POST'])
def generate_qr(external_id):
    """Generate or regenerate a member's QR code"""
    ctx = get_context()
    try:
        member = ctx.members.get_member_by_external_id(external_id)
        result = ctx.members.generate_qr_code(member.id)
    except MemberNotFound as e:
        return _error(str(e), 404, 'unknown_member')
    except MemberValidationError as e:
        return _error(str(e), 400, 'validation_error')
    except BackendUnavailable as e:
        logger.error(f"QR generation error for {external_id}: {str(e)}")
        return _error('Failed to generate QR code', 503, 'backend_unavailable')
    except OSError as e:
        logger.error(f"Saving QR code for {external_id} failed: {str(e)}")
        return _error('Failed to save QR code', 500, 'render_error')

    image = result['image']
    if not image['success']:
        return _error(f"Failed to render QR code: {image['error']}", 500, 'render_error')

    return jsonify({
        'success': True,
        'message': 'QR code generated',
        'qr_payload': result['qr_payload'],
        'image_base64': image['image_base64'],
        'filename': image['filename'],
        'path': result['path'],
        'member': result['member'].to_dict()
    })


@api.route('/members/<external_id>/qr.png')
def download_qr(external_id):
    """Download the member's current QR code as PNG"""
    ctx = get_context()
    try:
        member = ctx.members.get_member_by_external_id(external_id)
    except MemberNotFound as e:
        return _error(str(e), 404, 'unknown_member')
    except BackendUnavailable as e:
        logger.error(f"QR download error for {external_id}: {str(e)}")
        return _error('Failed to load QR code', 503, 'backend_unavailable')

    if not member.qr_payload:
        return _error('No QR code generated yet', 404, 'no_qr_code')

    image = ctx.qr_generator.generate_qr_image(member.qr_payload, member.external_id)
    if not image['success']:
        return _error(f"Failed to render QR code: {image['error']}", 500, 'render_error')

    return send_file(
        io.BytesIO(base64.b64decode(image['image_base64'])),
        mimetype='image/png',
        as_attachment=True,
        download_name=image['filename']
    )


@api.route('/reports/logs')
def export_logs():
    """Export the presence log as CSV or Excel"""
    output_format = request.args.get('format', 'csv')
    try:
        start = date.fromisoformat(request.args['start']) if request.args.get('start') else None
        end = date.fromisoformat(request.args['end']) if request.args.get('end') else None
        report = get_context().reports.generate_log_report(start, end, output_format)
    except ValueError as e:
        return _error(str(e), 400, 'bad_request')
    except BackendUnavailable as e:
        logger.error(f"Report export error: {str(e)}")
        return _error('Failed to export logs', 503, 'backend_unavailable')

    return send_file(report['path'], as_attachment=True, download_name=report['filename'])


@api.route('/stream')
def stream():
    """Server-sent events, one per recorded scan"""
    ctx = get_context()

    def generate():
        events = queue.Queue()
        with ctx.db.subscribe_to_log_entry_changes(events.put):
            while True:
                try:
                    entry = events.get(timeout=15)
                except queue.Empty:
                    yield ': keep-alive\n\n'
                    continue

                member = ctx.db.get_member(entry.member_id)
                if member is None:
                    data = entry.to_dict()
                else:
                    notification = ctx.notifications.build_scan_notification(member, entry)
                    data = ctx.notifications.notification_to_dict(notification)
                yield f"data: {json.dumps(data)}\n\n"

    return Response(generate(), mimetype='text/event-stream')


if __name__ == '__main__':
    app = create_app()
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=5000, threaded=True)

# Lab Presence Tracker - Modules Package
"""
Core logic modules for the lab presence tracker.
"""

# Module descriptions
MODULES = {
    'models': 'Members, log entries and scan outcomes',
    'exceptions': 'Backend and member management errors',
    'database_manager': 'SQLite backend and log persistence',
    'qr_generator': 'QR payload issuance, parsing and rendering',
    'identity_resolver': 'Scan payload to member resolution',
    'presence_state': 'IN/OUT inference from the last log entry',
    'scan_throttle': 'Per-station scan debounce',
    'occupancy': 'Daily entry/exit and occupancy estimate',
    'attendance_manager': 'Scan pipeline and dashboard queries',
    'member_manager': 'Profiles and QR code management',
    'notification_system': 'Log entry change subscriptions',
    'report_generator': 'Log export to CSV and Excel'
}


def get_module_info():
    """Get information about available modules"""
    return MODULES

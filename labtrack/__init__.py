# Lab Presence Tracker - Package
"""
Main package for the laboratory check-in/check-out tracker.
Members scan a QR code at a station to toggle between inside and outside the
lab; administrators see occupancy and the presence log.
"""

__version__ = "1.0.0"
__author__ = "LabTrack Team"
__description__ = "QR code based laboratory check-in/check-out tracker"

# Import core components for easy access
from .modules.database_manager import DatabaseManager
from .modules.qr_generator import QRGenerator
from .modules.identity_resolver import IdentityResolver
from .modules.presence_state import PresenceStateMachine
from .modules.scan_throttle import ScanThrottle
from .modules.occupancy import OccupancySummarizer
from .modules.attendance_manager import AttendanceManager
from .modules.member_manager import MemberManager
from .modules.report_generator import ReportGenerator
from .modules.notification_system import NotificationSystem

__all__ = [
    'DatabaseManager',
    'QRGenerator',
    'IdentityResolver',
    'PresenceStateMachine',
    'ScanThrottle',
    'OccupancySummarizer',
    'AttendanceManager',
    'MemberManager',
    'ReportGenerator',
    'NotificationSystem'
]

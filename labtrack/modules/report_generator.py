"""
Report Generator Module - Lab Presence Tracker
Author: LabTrack Team
Date: October 2026

Exports the presence log for a date range as CSV or Excel so administrators
can keep historical records outside the tracker.

Features:
- Log export with member names
- Per-day entry/exit summary (Excel)
- CSV and Excel output via pandas
"""

import logging
import os
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd

from labtrack.modules.occupancy import OccupancySummarizer

LOG_COLUMNS = ['timestamp', 'action', 'external_id', 'member_name', 'recorded_by', 'id']


class ReportGenerator:
    """
    Builds log exports from the backend.
    """

    def __init__(self, database_manager, attendance_manager, output_dir='exports'):
        """
        Args:
            database_manager: Backend providing ``list_log_entries_between``
            attendance_manager: Used to attach member names
            output_dir: Directory receiving generated files
        """
        self.db = database_manager
        self.attendance = attendance_manager
        self.summarizer = OccupancySummarizer()
        self.output_dir = str(output_dir)
        self.supported_formats = ['csv', 'excel']
        self.logger = logging.getLogger(__name__)

    def _log_frame(self, start: date, end: date) -> pd.DataFrame:
        entries = self.db.list_log_entries_between(
            start.isoformat(), (end + timedelta(days=1)).isoformat()
        )
        rows = self.attendance.with_members(entries)
        return pd.DataFrame(rows, columns=LOG_COLUMNS)

    def _daily_summary(self, start: date, end: date) -> pd.DataFrame:
        entries = self.db.list_log_entries_between(
            start.isoformat(), (end + timedelta(days=1)).isoformat()
        )
        total_members = self.db.count_members()

        rows: List[Dict[str, Any]] = []
        day = start
        while day <= end:
            rows.append(self.summarizer.summarize(entries, day, total_members).to_dict())
            day += timedelta(days=1)
        return pd.DataFrame(rows)

    def generate_log_report(self, start: Optional[date] = None, end: Optional[date] = None,
                            output_format: str = 'csv') -> Dict[str, Any]:
        """
        Export log entries for an inclusive date range.

        Args:
            start (date): First day, defaults to 30 days before ``end``
            end (date): Last day, defaults to today
            output_format (str): 'csv' or 'excel'

        Returns:
            dict: Report result with file path and record count

        Raises:
            ValueError: Unsupported format or inverted range
        """
        if output_format not in self.supported_formats:
            raise ValueError(f"Unsupported format: {output_format}")

        end = end or date.today()
        start = start or end - timedelta(days=30)
        if start > end:
            raise ValueError('Report start date is after end date')

        os.makedirs(self.output_dir, exist_ok=True)
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        df_logs = self._log_frame(start, end)

        if output_format == 'csv':
            filename = f"lab_logs_{start.isoformat()}_{end.isoformat()}_{stamp}.csv"
            filepath = os.path.join(self.output_dir, filename)
            df_logs.to_csv(filepath, index=False, encoding='utf-8')
        else:
            filename = f"lab_logs_{start.isoformat()}_{end.isoformat()}_{stamp}.xlsx"
            filepath = os.path.join(self.output_dir, filename)
            with pd.ExcelWriter(filepath, engine='openpyxl') as writer:
                df_logs.to_excel(writer, sheet_name='Logs', index=False)
                self._daily_summary(start, end).to_excel(writer, sheet_name='Daily Summary', index=False)

        self.logger.info(f"Log report generated: {filename} ({len(df_logs)} records)")
        return {
            'success': True,
            'filename': filename,
            'path': filepath,
            'format': output_format,
            'record_count': len(df_logs),
            'date_range': {'start_date': start.isoformat(), 'end_date': end.isoformat()}
        }

"""
Member Manager Module - Lab Presence Tracker
Author: LabTrack Team
Date: October 2026

This module handles member administration: adding members from seed data or
admin tooling, profile edits, QR code (re)generation and the member's own
presence history.

Features:
- Member creation with field validation
- Profile updates with external ID uniqueness
- QR payload issuance and regeneration
- Presence history for the member profile view
"""

import logging
import re
from typing import Any, Dict, List, Optional

from labtrack.modules.exceptions import MemberNotFound, MemberValidationError
from labtrack.modules.models import LogEntry, Member, Role
from labtrack.modules.qr_generator import QRGenerator

EXTERNAL_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,32}$')

DEMO_MEMBERS = [
    {'external_id': 'STU001', 'first_name': 'Juan', 'middle_name': 'Miguel', 'last_name': 'Dela Cruz'},
    {'external_id': 'STU002', 'first_name': 'Maria', 'middle_name': 'Garcia', 'last_name': 'Santos'},
    {'external_id': 'ADMIN01', 'first_name': 'Lab', 'last_name': 'Administrator', 'role': 'admin'},
]


class MemberManager:
    """
    Member administration on top of the backend.
    """

    PROFILE_FIELDS = ('first_name', 'middle_name', 'last_name', 'external_id')

    def __init__(self, database_manager, qr_generator: Optional[QRGenerator] = None,
                 history_limit: int = 20, qr_codes_folder=None):
        self.db = database_manager
        self.qr_generator = qr_generator or QRGenerator()
        self.history_limit = history_limit
        self.qr_codes_folder = qr_codes_folder
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _text(data: Dict[str, Any], field: str) -> str:
        value = data.get(field)
        if value is None:
            return ''
        if not isinstance(value, str):
            raise MemberValidationError(f"{field} must be a string")
        return value.strip()

    def _validate(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Normalize and validate member fields.

        Raises:
            MemberValidationError: A field is missing or malformed
        """
        cleaned = {}

        for field in ('first_name', 'last_name'):
            if field in data or not partial:
                value = self._text(data, field)
                if not value:
                    raise MemberValidationError(f"Missing required field: {field}")
                if len(value) > 50:
                    raise MemberValidationError(f"{field} must be at most 50 characters")
                cleaned[field] = value

        if 'middle_name' in data:
            value = self._text(data, 'middle_name')
            if len(value) > 50:
                raise MemberValidationError('middle_name must be at most 50 characters')
            cleaned['middle_name'] = value or None

        if 'external_id' in data or not partial:
            value = self._text(data, 'external_id')
            if not EXTERNAL_ID_PATTERN.match(value):
                raise MemberValidationError(
                    'External ID must be 1-32 letters, digits, hyphens or underscores'
                )
            cleaned['external_id'] = value

        if 'role' in data:
            try:
                cleaned['role'] = Role(data['role'])
            except ValueError:
                raise MemberValidationError(f"Invalid role: {data['role']}")

        return cleaned

    def create_member(self, member_data: Dict[str, Any]) -> Member:
        cleaned = self._validate(member_data)
        return self.db.create_member(
            external_id=cleaned['external_id'],
            first_name=cleaned['first_name'],
            last_name=cleaned['last_name'],
            middle_name=cleaned.get('middle_name'),
            role=cleaned.get('role', Role.MEMBER)
        )

    def seed_demo_members(self) -> List[Member]:
        """Create the demo members that are missing. Idempotent."""
        created = []
        for member_data in DEMO_MEMBERS:
            if self.db.find_member_by_external_id(member_data['external_id']) is None:
                created.append(self.create_member(member_data))

        if created:
            self.logger.info(f"Seeded {len(created)} demo members")
        return created

    def get_member_by_external_id(self, external_id: str) -> Member:
        member = self.db.find_member_by_external_id(external_id)
        if member is None:
            raise MemberNotFound(f"Member not found: {external_id}")
        return member

    def update_profile(self, member_id: str, update_data: Dict[str, Any]) -> Member:
        """
        Update the editable profile fields of a member.

        Changing the external ID clears the stored QR payload, since the old
        code would no longer resolve. The member has to generate a new one.

        Raises:
            MemberNotFound: Unknown member
            MemberValidationError: Invalid fields or external ID taken
        """
        member = self.db.get_member(member_id)
        if member is None:
            raise MemberNotFound(f"Member not found: {member_id}")

        unknown = set(update_data) - set(self.PROFILE_FIELDS)
        if unknown:
            raise MemberValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        fields = self._validate(update_data, partial=True)
        if not fields:
            raise MemberValidationError('No valid fields to update')

        if 'external_id' in fields and fields['external_id'] != member.external_id:
            other = self.db.find_member_by_external_id(fields['external_id'])
            if other is not None:
                raise MemberValidationError(f"External ID already exists: {fields['external_id']}")
            fields['qr_payload'] = None
            self.logger.info(
                f"External ID of member {member_id} changed from {member.external_id} "
                f"to {fields['external_id']}; QR code cleared"
            )

        return self.db.update_member(member_id, fields)

    def generate_qr_code(self, member_id: str) -> Dict[str, Any]:
        """
        Issue (or reissue) the member's QR payload, store it and render it.

        Returns:
            dict: The updated member, the image generation result and the
                path of the saved PNG when a QR codes folder is configured
        """
        member = self.db.get_member(member_id)
        if member is None:
            raise MemberNotFound(f"Member not found: {member_id}")

        try:
            payload = self.qr_generator.build_payload(member)
        except ValueError as e:
            raise MemberValidationError(str(e))

        if payload != member.qr_payload:
            member = self.db.update_member(member_id, {'qr_payload': payload})

        image = self.qr_generator.generate_qr_image(payload, member.external_id)
        path = None
        if image['success'] and self.qr_codes_folder:
            path = self.qr_generator.save_qr_code_image(
                image['image_base64'], image['filename'], self.qr_codes_folder
            )

        self.logger.info(f"QR code issued for {member.external_id}")
        return {'member': member, 'qr_payload': payload, 'image': image, 'path': path}

    def get_history(self, member_id: str, limit: Optional[int] = None) -> List[LogEntry]:
        return self.db.list_member_log_entries(member_id, limit or self.history_limit)

"""
QR Code Generator Module - Lab Presence Tracker
Author: LabTrack Team
Date: October 2026

This module issues the QR payloads members carry and renders them as PNG
images. A payload has the form ``<prefix>_<external_id>_<member_id>``; the
external ID is the lookup key and the trailing member ID is a redundant
confirmation.

Features:
- Payload issuance bound to a member's external ID and ID
- Payload parsing for scanned codes
- PNG rendering with configurable colours and sizing
- Base64 export and saving to disk
"""

import base64
import io
import logging
import os
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

import qrcode

from labtrack.modules.models import Member

DEFAULT_PREFIX = 'IBACMI_LAB'


class ParsedPayload(NamedTuple):
    external_id: str
    member_id: str


class QRGenerator:
    """
    Issues, parses and renders lab access QR codes.
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX, settings: Optional[Dict[str, Any]] = None):
        """
        Initialize the QR code generator.

        Args:
            prefix (str): System prefix embedded in every payload
            settings (dict): Overrides for the image settings
        """
        if not prefix or not prefix.strip():
            raise ValueError('QR payload prefix must not be empty')

        self.prefix = prefix
        self.logger = logging.getLogger(__name__)

        self.default_settings = {
            'version': 1,  # Grows automatically with fit=True
            'error_correction': qrcode.constants.ERROR_CORRECT_M,
            'box_size': 10,
            'border': 2,
            'fill_color': '#1e40af',
            'back_color': 'white'
        }
        if settings:
            self.default_settings.update(settings)

    def build_payload(self, member: Member) -> str:
        """
        Build the payload string for a member.

        Raises:
            ValueError: The member has no external ID
        """
        if not member.external_id:
            raise ValueError('Member needs an external ID before a QR code can be generated')
        return f"{self.prefix}_{member.external_id}_{member.id}"

    def parse_payload(self, payload: str) -> Optional[ParsedPayload]:
        """
        Split a scanned payload into its external ID and member ID.

        The external ID may itself contain underscores; the member ID is
        everything after the last one.

        Returns:
            ParsedPayload or None when the string is not a payload
        """
        if not payload:
            return None

        marker = f"{self.prefix}_"
        if not payload.startswith(marker):
            return None

        external_id, separator, member_id = payload[len(marker):].rpartition('_')
        if not separator or not external_id or not member_id:
            return None

        return ParsedPayload(external_id, member_id)

    def is_payload(self, value: str) -> bool:
        return self.parse_payload(value) is not None

    def download_filename(self, external_id: str) -> str:
        return f"IBACMI_Lab_QR_{external_id}.png"

    def generate_qr_image(self, payload: str, external_id: str,
                          custom_settings: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        Render a payload as a PNG QR code.

        Args:
            payload (str): Payload to encode
            external_id (str): Member external ID, used for the filename
            custom_settings (dict): Per-call image settings

        Returns:
            dict: Generation result with base64 image data
        """
        try:
            settings = self.default_settings.copy()
            if custom_settings:
                settings.update(custom_settings)

            qr = qrcode.QRCode(
                version=settings['version'],
                error_correction=settings['error_correction'],
                box_size=settings['box_size'],
                border=settings['border']
            )
            qr.add_data(payload)
            qr.make(fit=True)

            img = qr.make_image(
                fill_color=settings['fill_color'],
                back_color=settings['back_color']
            )

            buffer = io.BytesIO()
            img.save(buffer, format='PNG')
            img_base64 = base64.b64encode(buffer.getvalue()).decode()

            self.logger.info(f"QR code image generated for {external_id}")
            return {
                'success': True,
                'qr_data': payload,
                'image_base64': img_base64,
                'image_size': img.size,
                'filename': self.download_filename(external_id),
                'generated_at': datetime.now().isoformat()
            }

        except Exception as e:
            self.logger.error(f"QR code generation failed for {external_id}: {str(e)}")
            return {
                'success': False,
                'error': str(e),
                'external_id': external_id
            }

    def save_qr_code_image(self, image_base64: str, filename: str, output_dir) -> str:
        """
        Save a base64 QR code image to disk.

        Returns:
            str: Path of the written file
        """
        os.makedirs(output_dir, exist_ok=True)
        file_path = os.path.join(output_dir, filename)
        with open(file_path, 'wb') as f:
            f.write(base64.b64decode(image_base64))

        self.logger.info(f"QR code image saved to {file_path}")
        return file_path

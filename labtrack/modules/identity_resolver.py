"""
Maps scanned QR payloads, or bare external IDs typed in by an operator, to
registered members.
"""

import logging
from typing import Optional

from labtrack.modules.models import Member
from labtrack.modules.qr_generator import QRGenerator


class IdentityResolver:
    """
    Resolves a scan to a Member. Returns None when nobody matches; never
    creates members.
    """

    def __init__(self, backend, qr_generator: QRGenerator, strict_member_check: bool = False):
        """
        Args:
            backend: Object providing ``find_member_by_external_id`` and ``get_member``
            qr_generator (QRGenerator): Used to recognise payloads
            strict_member_check (bool): Treat a payload whose member ID suffix
                disagrees with the stored member as unknown
        """
        self.backend = backend
        self.qr_generator = qr_generator
        self.strict_member_check = strict_member_check
        self.logger = logging.getLogger(__name__)

    def resolve(self, payload_or_external_id: str) -> Optional[Member]:
        value = (payload_or_external_id or '').strip()
        if not value:
            return None

        member = self.backend.find_member_by_external_id(value)
        if member:
            return member

        parsed = self.qr_generator.parse_payload(value)
        if parsed is None:
            self.logger.info(f"Scan value is neither a known external ID nor a payload: {value!r}")
            return None

        member = self.backend.find_member_by_external_id(parsed.external_id)
        if member is None:
            self.logger.info(f"No member registered for external ID {parsed.external_id}")
            return None

        if member.id != parsed.member_id:
            owner = self.backend.get_member(parsed.member_id)
            if owner is not None:
                # Badge issued to someone else before the external ID was reassigned
                self.logger.warning(
                    f"Payload for {parsed.external_id} belongs to member {owner.id} "
                    f"({owner.external_id}), not {member.id}"
                )
                return None

            self.logger.warning(
                f"Payload for {parsed.external_id} carries member ID {parsed.member_id}, "
                f"stored member is {member.id}"
            )
            if self.strict_member_check:
                return None

        return member

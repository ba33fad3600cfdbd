"""
Tests for QR payload issuance and scan resolution.
"""

import base64

import pytest

from labtrack.modules.identity_resolver import IdentityResolver
from labtrack.modules.models import Member
from labtrack.modules.qr_generator import QRGenerator


def test_build_and_parse_payload():
    qr = QRGenerator()
    member = Member(id='abc123', external_id='STU001', first_name='A', last_name='B')

    payload = qr.build_payload(member)

    assert payload == 'IBACMI_LAB_STU001_abc123'
    parsed = qr.parse_payload(payload)
    assert parsed.external_id == 'STU001'
    assert parsed.member_id == 'abc123'


def test_parse_keeps_underscores_in_external_id():
    parsed = QRGenerator().parse_payload('IBACMI_LAB_CS_2026_01_f00d')
    assert parsed.external_id == 'CS_2026_01'
    assert parsed.member_id == 'f00d'


@pytest.mark.parametrize('value', [
    'garbage',
    '',
    'IBACMI_LAB_',
    'IBACMI_LAB_STU001',
    'IBACMI_LAB__abc123',
    'IBACMI_LAB_STU001_',
    'OTHER_LAB_STU001_abc123',
])
def test_non_payloads(value):
    assert QRGenerator().parse_payload(value) is None


def test_custom_prefix():
    qr = QRGenerator(prefix='PHYS')
    assert qr.parse_payload('PHYS_STU9_x1').external_id == 'STU9'
    assert qr.parse_payload('IBACMI_LAB_STU9_x1') is None


def test_build_payload_requires_external_id():
    member = Member(id='abc123', external_id='', first_name='A', last_name='B')
    with pytest.raises(ValueError):
        QRGenerator().build_payload(member)


def test_generate_qr_image():
    result = QRGenerator().generate_qr_image('IBACMI_LAB_STU001_abc123', 'STU001')

    assert result['success']
    assert result['filename'] == 'IBACMI_Lab_QR_STU001.png'
    assert base64.b64decode(result['image_base64']).startswith(b'\x89PNG')


def test_save_qr_code_image(tmp_path):
    qr = QRGenerator()
    result = qr.generate_qr_image('IBACMI_LAB_STU001_abc123', 'STU001')

    path = qr.save_qr_code_image(result['image_base64'], result['filename'], tmp_path / 'qr')

    with open(path, 'rb') as f:
        assert f.read(4) == b'\x89PNG'


def test_resolve_payload_to_member(db, alice, qr_generator):
    resolver = IdentityResolver(db, qr_generator)

    member = resolver.resolve('IBACMI_LAB_STU001_abc123')

    assert member is not None
    assert member.external_id == 'STU001'
    assert member.id == alice.id


def test_resolve_bare_external_id(db, alice, qr_generator):
    resolver = IdentityResolver(db, qr_generator)
    assert resolver.resolve('  STU001 ').id == alice.id


def test_resolve_garbage_is_not_found(db, alice, qr_generator):
    resolver = IdentityResolver(db, qr_generator)
    assert resolver.resolve('garbage') is None
    assert resolver.resolve('') is None
    assert resolver.resolve(None) is None


def test_resolve_unknown_external_id_in_payload(db, alice, qr_generator):
    resolver = IdentityResolver(db, qr_generator)
    assert resolver.resolve('IBACMI_LAB_STU404_abc123') is None


def test_resolution_does_not_create_members(db, qr_generator):
    resolver = IdentityResolver(db, qr_generator)
    resolver.resolve('IBACMI_LAB_NEW001_abc123')
    assert db.count_members() == 0


def test_strict_check_rejects_mismatched_member_id(db, alice, qr_generator):
    resolver = IdentityResolver(db, qr_generator, strict_member_check=True)

    assert resolver.resolve('IBACMI_LAB_STU001_abc123') is None
    assert resolver.resolve(f"IBACMI_LAB_STU001_{alice.id}").id == alice.id


def test_generated_payload_round_trips(db, alice, members, qr_generator):
    result = members.generate_qr_code(alice.id)

    resolved = IdentityResolver(db, qr_generator, strict_member_check=True).resolve(result['qr_payload'])

    assert resolved.id == alice.id


def test_old_badge_does_not_resolve_to_new_holder_of_external_id(db, alice, members, qr_generator):
    old_payload = members.generate_qr_code(alice.id)['qr_payload']
    members.update_profile(alice.id, {'external_id': 'STU009'})
    carol = members.create_member({'external_id': 'STU001', 'first_name': 'Carol', 'last_name': 'Lim'})

    resolver = IdentityResolver(db, qr_generator)

    assert resolver.resolve(old_payload) is None
    assert resolver.resolve('STU001').id == carol.id
    assert resolver.resolve(f"IBACMI_LAB_STU001_{carol.id}").id == carol.id

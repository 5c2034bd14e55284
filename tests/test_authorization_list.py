from __future__ import annotations

from datetime import datetime, timezone

import pytest

from pyasn1.codec.der import encoder
from pyasn1.type import univ

from android_key_attestation import (
    Algorithm,
    AuthorizationList,
    DecodeError,
    Digest,
    EcCurve,
    KeyPurpose,
    Origin,
    RootOfTrust,
    VerifiedBootState,
)

from .builders import (
    CREATION_DATE,
    integer_set,
    null,
    root_of_trust,
    tagged,
    tee_enforced_elements,
    to_millis,
)


def test_parse_tee_enforced():
    auth = AuthorizationList.parse(tee_enforced_elements())

    assert auth.purpose == {KeyPurpose.SIGN, KeyPurpose.VERIFY}
    assert auth.algorithm == Algorithm.EC
    assert auth.key_size == 256
    assert auth.digest == {Digest.SHA_2_256}
    assert auth.ec_curve == EcCurve.P_256
    assert auth.no_auth_required is True
    assert auth.origin == Origin.GENERATED
    assert auth.os_version == 90000
    assert auth.os_patch_level == 201806
    assert auth.root_of_trust == RootOfTrust(
        verified_boot_key=b"\x11" * 32,
        device_locked=True,
        verified_boot_state=VerifiedBootState.VERIFIED,
        verified_boot_hash=b"\x22" * 32,
    )

    # Not present in the attestation
    assert auth.padding is None
    assert auth.rsa_public_exponent is None
    assert auth.all_applications is False
    assert auth.rollback_resistance is False


def test_empty_list():
    auth = AuthorizationList.parse([])
    assert auth == AuthorizationList()
    assert auth.purpose is None
    assert auth.no_auth_required is False


def test_order_does_not_matter():
    elements = tee_enforced_elements()
    assert AuthorizationList.parse(elements) == AuthorizationList.parse(
        list(reversed(elements))
    )


def test_creation_date_is_utc():
    auth = AuthorizationList.parse([tagged(701, univ.Integer(to_millis(CREATION_DATE)))])
    assert auth.creation_date == datetime(2018, 7, 29, 12, 31, 54, tzinfo=timezone.utc)
    assert auth.creation_date.tzinfo is not None


def test_timestamp_keeps_milliseconds():
    auth = AuthorizationList.parse([tagged(400, univ.Integer(1500))])
    assert auth.active_date == datetime(1970, 1, 1, 0, 0, 1, 500000, tzinfo=timezone.utc)


def test_empty_set():
    auth = AuthorizationList.parse([tagged(1, integer_set())])
    assert auth.purpose == frozenset()


def test_octet_string_fields():
    auth = AuthorizationList.parse(
        [
            tagged(709, univ.OctetString(b"\x30\x03\x02\x01\x01")),
            tagged(710, univ.OctetString(b"google")),
            tagged(717, univ.OctetString(b"Pixel 3")),
        ]
    )
    assert auth.attestation_application_id == b"\x30\x03\x02\x01\x01"
    assert auth.attestation_id_brand == b"google"
    assert auth.attestation_id_model == b"Pixel 3"
    assert auth.attestation_id_serial is None


def test_presence_flags():
    auth = AuthorizationList.parse(
        [
            tagged(600, null()),
            tagged(303, null()),
            tagged(720, null()),
        ]
    )
    assert auth.all_applications is True
    assert auth.rollback_resistance is True
    assert auth.device_unique_attestation is True
    assert auth.no_auth_required is False


def test_presence_ignores_payload():
    auth = AuthorizationList.parse([tagged(509, univ.Integer(0))])
    assert auth.unlocked_device_required is True


def test_large_integer():
    auth = AuthorizationList.parse([tagged(200, univ.Integer(65537))])
    assert auth.rsa_public_exponent == 65537


def test_unknown_tags_are_skipped():
    elements = tee_enforced_elements()
    with_unknown = (
        [tagged(9999, univ.Integer(1))]
        + elements
        + [tagged(42, univ.OctetString(b"future"))]
        # [900] IMPLICIT INTEGER, primitive form
        + [b"\x9f\x87\x04\x01\x01"]
    )
    assert AuthorizationList.parse(with_unknown) == AuthorizationList.parse(elements)


def test_wrong_shape_reports_tag():
    with pytest.raises(DecodeError) as e:
        AuthorizationList.parse([tagged(702, univ.OctetString(b"\x00"))])
    assert e.value.tag == 702
    assert e.value.field == "origin"
    assert "tag=702" in str(e.value)


def test_known_tag_in_primitive_form():
    with pytest.raises(DecodeError) as e:
        AuthorizationList.parse([b"\x83\x02\x01\x00"])
    assert e.value.tag == 3
    assert e.value.field == "key_size"


def test_set_where_integer_expected():
    with pytest.raises(DecodeError) as e:
        AuthorizationList.parse([tagged(3, integer_set(256))])
    assert e.value.tag == 3


def test_unknown_enum_value():
    with pytest.raises(DecodeError) as e:
        AuthorizationList.parse([tagged(2, univ.Integer(99))])
    assert e.value.tag == 2
    assert "Algorithm" in str(e.value)


def test_unknown_enum_value_in_set():
    with pytest.raises(DecodeError) as e:
        AuthorizationList.parse([tagged(1, integer_set(2, 4))])
    assert e.value.tag == 1


def test_repeated_tag():
    with pytest.raises(DecodeError) as e:
        AuthorizationList.parse(
            [tagged(3, univ.Integer(256)), tagged(3, univ.Integer(384))]
        )
    assert e.value.tag == 3
    assert e.value.field == "key_size"


def test_untagged_element():
    with pytest.raises(DecodeError):
        AuthorizationList.parse([encoder.encode(univ.Integer(1))])


def test_truncated_element():
    element = tagged(3, univ.Integer(256))
    with pytest.raises(DecodeError):
        AuthorizationList.parse([element[:-1]])


def test_root_of_trust_without_hash():
    auth = AuthorizationList.parse(
        [tagged(704, root_of_trust(locked=False, state=2, boot_hash=None))]
    )
    assert auth.root_of_trust.verified_boot_hash is None
    assert auth.root_of_trust.device_locked is False
    assert auth.root_of_trust.verified_boot_state == VerifiedBootState.UNVERIFIED


def test_root_of_trust_bad_boot_state():
    with pytest.raises(DecodeError) as e:
        AuthorizationList.parse([tagged(704, root_of_trust(state=7))])
    assert e.value.tag == 704
    assert e.value.field == "root_of_trust"


def test_authorization_list_is_frozen():
    auth = AuthorizationList.parse(tee_enforced_elements())
    with pytest.raises(AttributeError):
        auth.key_size = 512

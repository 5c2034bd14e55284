# Copyright (c) 2018 Yubico AB
# All rights reserved.
#
#   Redistribution and use in source and binary forms, with or
#   without modification, are permitted provided that the following
#   conditions are met:
#
#    1. Redistributions of source code must retain the above copyright
#       notice, this list of conditions and the following disclaimer.
#    2. Redistributions in binary form must reproduce the above
#       copyright notice, this list of conditions and the following
#       disclaimer in the documentation and/or other materials provided
#       with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE
# COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING,
# BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES;
# LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT
# LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN
# ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

from __future__ import annotations

import logging

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum, unique
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Tuple, Type

from pyasn1.error import PyAsn1Error
from pyasn1.type import univ

from . import asn1
from .base import DecodeError

logger = logging.getLogger(__name__)


@unique
class KeyPurpose(IntEnum):
    ENCRYPT = 0
    DECRYPT = 1
    SIGN = 2
    VERIFY = 3
    WRAP_KEY = 5
    AGREE_KEY = 6
    ATTEST_KEY = 7


@unique
class Algorithm(IntEnum):
    RSA = 1
    EC = 3
    AES = 32
    TRIPLE_DES = 33
    HMAC = 128


@unique
class BlockMode(IntEnum):
    ECB = 1
    CBC = 2
    CTR = 3
    GCM = 32


@unique
class Digest(IntEnum):
    NONE = 0
    MD5 = 1
    SHA1 = 2
    SHA_2_224 = 3
    SHA_2_256 = 4
    SHA_2_384 = 5
    SHA_2_512 = 6


@unique
class Padding(IntEnum):
    NONE = 1
    RSA_OAEP = 2
    RSA_PSS = 3
    RSA_PKCS1_1_5_ENCRYPT = 4
    RSA_PKCS1_1_5_SIGN = 5
    PKCS7 = 64


@unique
class EcCurve(IntEnum):
    P_224 = 0
    P_256 = 1
    P_384 = 2
    P_521 = 3
    CURVE_25519 = 4


@unique
class Origin(IntEnum):
    """Where the key material was created."""

    GENERATED = 0
    DERIVED = 1
    IMPORTED = 2
    UNKNOWN = 3
    SECURELY_IMPORTED = 4


@unique
class VerifiedBootState(IntEnum):
    VERIFIED = 0
    SELF_SIGNED = 1
    UNVERIFIED = 2
    FAILED = 3


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _to_enum(enum_cls, value: int):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValueError(f"{value} is not a valid {enum_cls.__name__}") from None


@dataclass(frozen=True)
class RootOfTrust:
    """Verified boot state of the device at the time the key was attested."""

    verified_boot_key: bytes
    device_locked: bool
    verified_boot_state: VerifiedBootState
    verified_boot_hash: Optional[bytes] = None

    @classmethod
    def parse(cls, data: bytes) -> RootOfTrust:
        seq = asn1.decode(data, asn1.RootOfTrustSequence())
        boot_hash = seq.getComponentByName("verifiedBootHash", default=None)
        return cls(
            verified_boot_key=seq["verifiedBootKey"].asOctets(),
            device_locked=bool(seq["deviceLocked"]),
            verified_boot_state=_to_enum(
                VerifiedBootState, int(seq["verifiedBootState"])
            ),
            verified_boot_hash=None if boot_hash is None else boot_hash.asOctets(),
        )


def _integer(data: bytes) -> int:
    return int(asn1.decode(data, univ.Integer()))


def _octets(data: bytes) -> bytes:
    return asn1.decode(data, univ.OctetString()).asOctets()


def _timestamp(data: bytes) -> datetime:
    return _EPOCH + timedelta(milliseconds=_integer(data))


def _present(data: bytes) -> bool:
    # Presence is the value, whatever the payload.
    return True


def _enum(enum_cls: Type[IntEnum]) -> Callable[[bytes], IntEnum]:
    def decode(data):
        return _to_enum(enum_cls, _integer(data))

    return decode


def _enum_set(enum_cls: Type[IntEnum]) -> Callable[[bytes], FrozenSet[IntEnum]]:
    def decode(data):
        return frozenset(
            _to_enum(enum_cls, int(v)) for v in asn1.decode(data, asn1.IntegerSet())
        )

    return decode


# Tag number -> (field name, payload decoder)
_FIELDS: Dict[int, Tuple[str, Callable[[bytes], object]]] = {
    1: ("purpose", _enum_set(KeyPurpose)),
    2: ("algorithm", _enum(Algorithm)),
    3: ("key_size", _integer),
    4: ("block_mode", _enum_set(BlockMode)),
    5: ("digest", _enum_set(Digest)),
    6: ("padding", _enum_set(Padding)),
    7: ("caller_nonce", _present),
    8: ("min_mac_length", _integer),
    10: ("ec_curve", _enum(EcCurve)),
    200: ("rsa_public_exponent", _integer),
    203: ("mgf_digest", _enum_set(Digest)),
    303: ("rollback_resistance", _present),
    305: ("early_boot_only", _present),
    400: ("active_date", _timestamp),
    401: ("origination_expire_date", _timestamp),
    402: ("usage_expire_date", _timestamp),
    405: ("usage_count_limit", _integer),
    503: ("no_auth_required", _present),
    504: ("user_auth_type", _integer),
    505: ("auth_timeout", _integer),
    506: ("allow_while_on_body", _present),
    507: ("trusted_user_presence_required", _present),
    508: ("trusted_confirmation_required", _present),
    509: ("unlocked_device_required", _present),
    600: ("all_applications", _present),
    601: ("application_id", _octets),
    701: ("creation_date", _timestamp),
    702: ("origin", _enum(Origin)),
    703: ("rollback_resistant", _present),
    704: ("root_of_trust", RootOfTrust.parse),
    705: ("os_version", _integer),
    706: ("os_patch_level", _integer),
    709: ("attestation_application_id", _octets),
    710: ("attestation_id_brand", _octets),
    711: ("attestation_id_device", _octets),
    712: ("attestation_id_product", _octets),
    713: ("attestation_id_serial", _octets),
    714: ("attestation_id_imei", _octets),
    715: ("attestation_id_meid", _octets),
    716: ("attestation_id_manufacturer", _octets),
    717: ("attestation_id_model", _octets),
    718: ("vendor_patch_level", _integer),
    719: ("boot_patch_level", _integer),
    720: ("device_unique_attestation", _present),
}


@dataclass(frozen=True)
class AuthorizationList:
    """Properties and usage constraints of an attested key.

    Each field is only set if its tag was present in the attestation. Tags
    without a value (such as ``all_applications``) are booleans that are True
    when present.
    """

    purpose: Optional[FrozenSet[KeyPurpose]] = None
    algorithm: Optional[Algorithm] = None
    key_size: Optional[int] = None
    block_mode: Optional[FrozenSet[BlockMode]] = None
    digest: Optional[FrozenSet[Digest]] = None
    padding: Optional[FrozenSet[Padding]] = None
    caller_nonce: bool = False
    min_mac_length: Optional[int] = None
    ec_curve: Optional[EcCurve] = None
    rsa_public_exponent: Optional[int] = None
    mgf_digest: Optional[FrozenSet[Digest]] = None
    rollback_resistance: bool = False
    early_boot_only: bool = False
    active_date: Optional[datetime] = None
    origination_expire_date: Optional[datetime] = None
    usage_expire_date: Optional[datetime] = None
    usage_count_limit: Optional[int] = None
    no_auth_required: bool = False
    user_auth_type: Optional[int] = None
    auth_timeout: Optional[int] = None
    allow_while_on_body: bool = False
    trusted_user_presence_required: bool = False
    trusted_confirmation_required: bool = False
    unlocked_device_required: bool = False
    all_applications: bool = False
    application_id: Optional[bytes] = None
    creation_date: Optional[datetime] = None
    origin: Optional[Origin] = None
    rollback_resistant: bool = False
    root_of_trust: Optional[RootOfTrust] = None
    os_version: Optional[int] = None
    os_patch_level: Optional[int] = None
    attestation_application_id: Optional[bytes] = None
    attestation_id_brand: Optional[bytes] = None
    attestation_id_device: Optional[bytes] = None
    attestation_id_product: Optional[bytes] = None
    attestation_id_serial: Optional[bytes] = None
    attestation_id_imei: Optional[bytes] = None
    attestation_id_meid: Optional[bytes] = None
    attestation_id_manufacturer: Optional[bytes] = None
    attestation_id_model: Optional[bytes] = None
    vendor_patch_level: Optional[int] = None
    boot_patch_level: Optional[int] = None
    device_unique_attestation: bool = False

    @classmethod
    def parse(cls, elements: Iterable[bytes]) -> AuthorizationList:
        """Build an AuthorizationList from its explicitly tagged DER elements.

        Elements may come in any order. Unknown tags are skipped, a known tag
        with an unexpected encoding raises DecodeError.
        """
        values: Dict[str, object] = {}
        for element in elements:
            try:
                tag, _ = asn1.context_tag(element)
            except PyAsn1Error as e:
                raise DecodeError(f"Malformed AuthorizationList element: {e}") from e

            if tag not in _FIELDS:
                logger.debug("Ignoring unknown AuthorizationList tag %d", tag)
                continue

            name, decode = _FIELDS[tag]
            if name in values:
                raise DecodeError("Repeated AuthorizationList tag", tag, name)
            try:
                values[name] = decode(asn1.explicit_payload(element))
            except (PyAsn1Error, ValueError, OverflowError) as e:
                raise DecodeError(f"Unexpected encoding: {e}", tag, name) from e

        return cls(**values)

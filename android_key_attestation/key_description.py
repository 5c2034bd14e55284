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
from enum import IntEnum, unique

from pyasn1.error import PyAsn1Error

from . import asn1
from .authorization_list import AuthorizationList
from .base import DecodeError, catch_builtins

logger = logging.getLogger(__name__)


@unique
class SecurityLevel(IntEnum):
    """Where the key and its attestation are kept and enforced."""

    SOFTWARE = 0
    TRUSTED_ENVIRONMENT = 1
    STRONGBOX = 2


def _security_level(value: int, field: str) -> SecurityLevel:
    try:
        return SecurityLevel(value)
    except ValueError:
        raise DecodeError(f"Unknown security level {value}", field=field) from None


@dataclass(frozen=True)
class KeyDescription:
    """The content of the Android key attestation certificate extension."""

    attestation_version: int
    attestation_security_level: SecurityLevel
    keymaster_version: int
    keymaster_security_level: SecurityLevel
    attestation_challenge: bytes
    unique_id: bytes
    software_enforced: AuthorizationList
    tee_enforced: AuthorizationList

    @classmethod
    @catch_builtins
    def parse(cls, data: bytes) -> KeyDescription:
        """Parse a DER encoded KeyDescription sequence."""
        try:
            seq = asn1.decode(data, asn1.KeyDescriptionSequence())
        except PyAsn1Error as e:
            raise DecodeError(str(e), field="KeyDescription") from e

        key_description = cls(
            attestation_version=int(seq["attestationVersion"]),
            attestation_security_level=_security_level(
                int(seq["attestationSecurityLevel"]), "attestationSecurityLevel"
            ),
            keymaster_version=int(seq["keymasterVersion"]),
            keymaster_security_level=_security_level(
                int(seq["keymasterSecurityLevel"]), "keymasterSecurityLevel"
            ),
            attestation_challenge=seq["attestationChallenge"].asOctets(),
            unique_id=seq["uniqueId"].asOctets(),
            software_enforced=AuthorizationList.parse(seq["softwareEnforced"]),
            tee_enforced=AuthorizationList.parse(seq["teeEnforced"]),
        )
        logger.debug(
            "Decoded KeyDescription version %d (%s)",
            key_description.attestation_version,
            key_description.attestation_security_level.name,
        )
        return key_description


def parse_key_description(data: bytes) -> KeyDescription:
    """Parse the DER payload of the key attestation extension."""
    return KeyDescription.parse(data)

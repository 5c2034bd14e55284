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

"""pyasn1 schema for the Android key attestation extension.

The outer KeyDescription is decoded against a fixed schema. AuthorizationList
elements are kept as raw TLVs so that they can be matched by tag number in any
order, and so that tags unknown to this library can be skipped.
"""

from __future__ import annotations

from typing import Tuple

from pyasn1.codec.der import decoder as der_decoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import base, namedtype, tag, univ


class AuthorizationListSequence(univ.SequenceOf):
    componentType = univ.Any()


class KeyDescriptionSequence(univ.Sequence):
    componentType = namedtype.NamedTypes(
        namedtype.NamedType("attestationVersion", univ.Integer()),
        namedtype.NamedType("attestationSecurityLevel", univ.Enumerated()),
        namedtype.NamedType("keymasterVersion", univ.Integer()),
        namedtype.NamedType("keymasterSecurityLevel", univ.Enumerated()),
        namedtype.NamedType("attestationChallenge", univ.OctetString()),
        namedtype.NamedType("uniqueId", univ.OctetString()),
        namedtype.NamedType("softwareEnforced", AuthorizationListSequence()),
        namedtype.NamedType("teeEnforced", AuthorizationListSequence()),
    )


class RootOfTrustSequence(univ.Sequence):
    componentType = namedtype.NamedTypes(
        namedtype.NamedType("verifiedBootKey", univ.OctetString()),
        namedtype.NamedType("deviceLocked", univ.Boolean()),
        namedtype.NamedType("verifiedBootState", univ.Enumerated()),
        # Added in attestation version 3.
        namedtype.OptionalNamedType("verifiedBootHash", univ.OctetString()),
    )


class IntegerSet(univ.SetOf):
    componentType = univ.Integer()


def decode(data: bytes, spec: base.Asn1Type):
    """Decode a single DER value against spec, rejecting trailing bytes."""
    if not data:
        raise PyAsn1Error("no data to decode")
    value, rest = der_decoder.decode(bytes(data), asn1Spec=spec)
    if rest:
        raise PyAsn1Error(f"{len(rest)} unexpected trailing bytes")
    return value


def _header_only(asn1Object, substrate, length, options):
    # Leave the payload in the stream; decode() returns it as the tail.
    yield asn1Object


def context_tag(element: bytes) -> Tuple[int, bool]:
    """Read the (tag number, constructed) pair of a context-specific TLV.

    Only the identifier octets are inspected, so elements of any form can be
    identified without knowing their type.
    """
    data = memoryview(bytes(element))
    if not data:
        raise PyAsn1Error("empty element")
    first = data[0]
    if first & 0xC0 != tag.tagClassContext:
        raise PyAsn1Error("expected a context-specific element")
    constructed = bool(first & tag.tagFormatConstructed)
    number = first & 0x1F
    if number != 0x1F:
        return number, constructed

    # High tag number form, base 128 with a continuation bit.
    number = 0
    for octet in data[1:]:
        number = (number << 7) | (octet & 0x7F)
        if not octet & 0x80:
            return number, constructed
    raise PyAsn1Error("truncated tag number")


def explicit_payload(element: bytes) -> bytes:
    """Return the inner TLV of an EXPLICIT context-tagged element."""
    _, constructed = context_tag(element)
    if not constructed:
        raise PyAsn1Error("expected an explicitly tagged element")
    header, payload = der_decoder.decode(bytes(element), substrateFun=_header_only)
    # Universal constructed types come back as a prototype tuple, not a value.
    if getattr(header, "tagSet", None) is None:
        raise PyAsn1Error("expected an explicitly tagged element")
    return payload

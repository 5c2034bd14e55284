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

from datetime import datetime, timezone
from functools import wraps
from typing import Callable, Optional, Sequence

from cryptography import x509
from cryptography.x509.verification import (
    Criticality,
    ExtensionPolicy,
    PolicyBuilder,
    Store,
    VerificationError,
)
from pyasn1.error import PyAsn1Error

logger = logging.getLogger(__name__)


class InvalidAttestation(Exception):
    """Base exception for attestation-related errors."""


class InvalidData(InvalidAttestation):
    """Attestation contains invalid or missing data."""


class ExtensionMissingError(InvalidData):
    """The leaf certificate does not carry the key attestation extension."""


class DecodeError(InvalidData):
    """The key attestation extension is malformed.

    :param tag: The AuthorizationList tag number being decoded, if known.
    :param field: The name of the field being decoded, if known.
    """

    def __init__(self, message, tag: Optional[int] = None, field: Optional[str] = None):
        super().__init__(message)
        self.tag = tag
        self.field = field

    def __str__(self):
        message = super().__str__()
        context = []
        if self.field:
            context.append(f"field={self.field}")
        if self.tag is not None:
            context.append(f"tag={self.tag}")
        if context:
            return f"{message} ({', '.join(context)})"
        return message


class UntrustedAttestation(InvalidAttestation):
    """The attestation decoded correctly but failed verification."""


class ChallengeMismatchError(UntrustedAttestation):
    """The supplied challenge does not match the attested one."""


class CertificateVerificationError(UntrustedAttestation):
    """The certificate chain could not be verified against the trusted roots.

    :param reason: The failure reported by the chain verifier.
    :param subject: The subject of the certificate the chain was built from.
    """

    def __init__(
        self, message, reason: Optional[str] = None, subject: Optional[str] = None
    ):
        super().__init__(message)
        self.reason = reason
        self.subject = subject


def catch_builtins(f):
    """Utility decorator to wrap decoding failures as DecodeError."""

    @wraps(f)
    def inner(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (ValueError, KeyError, IndexError, PyAsn1Error) as e:
            raise DecodeError(str(e) or type(e).__name__) from e

    return inner


def _require_ca(policy, certificate, basic_constraints: x509.BasicConstraints):
    if not basic_constraints.ca:
        raise ValueError(f"{certificate.subject.rfc4514_string()} is not a CA")


# Attestation issuers are not WebPKI CAs, only BasicConstraints is enforced.
_CA_POLICY = ExtensionPolicy.permit_all().require_present(
    x509.BasicConstraints, Criticality.AGNOSTIC, _require_ca
)


def _naive_utc(time: datetime) -> datetime:
    if time.tzinfo is not None:
        time = time.astimezone(timezone.utc).replace(tzinfo=None)
    return time


def verify_x509_chain(
    chain: Sequence[x509.Certificate],
    roots: Sequence[x509.Certificate],
    time: datetime,
) -> None:
    """Verifies a chain of certificates against a set of trusted roots.

    The first item in the chain is the leaf, the following items are
    intermediates ordered towards the root. Every certificate must be valid at
    the given time and the chain must terminate at one of the roots. Issuers
    must carry BasicConstraints with the CA flag set, critical or not. No
    other extension rules apply, as attestation chains are not WebPKI chains.

    :raises cryptography.x509.verification.VerificationError: on failure.
    """

    if not roots:
        raise VerificationError("no trusted root certificates were supplied")

    builder = (
        PolicyBuilder()
        .store(Store(list(roots)))
        .time(_naive_utc(time))
        .extension_policies(
            ca_policy=_CA_POLICY,
            ee_policy=ExtensionPolicy.permit_all(),
        )
    )
    verifier = builder.build_client_verifier()
    verifier.verify(chain[0], list(chain[1:]))


ChainVerifier = Callable[
    [Sequence[x509.Certificate], Sequence[x509.Certificate], datetime], None
]

_x509_chain_verifier: ChainVerifier = verify_x509_chain


def set_x509_chain_verifier(verifier: Optional[ChainVerifier]) -> ChainVerifier:
    """Replace the routine used to verify attestation certificate chains.

    Passing None restores the default. Returns the previously set verifier.
    """

    global _x509_chain_verifier
    previous = _x509_chain_verifier
    _x509_chain_verifier = verifier or verify_x509_chain
    return previous


def get_x509_chain_verifier() -> ChainVerifier:
    """Return the routine currently used to verify attestation chains."""
    return _x509_chain_verifier

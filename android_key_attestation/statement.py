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
from threading import Lock
from typing import Any, Iterable, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives.constant_time import bytes_eq
from cryptography.x509.verification import VerificationError
from pyasn1_modules import rfc5280

from . import asn1
from .base import (
    CertificateVerificationError,
    ChallengeMismatchError,
    ExtensionMissingError,
    catch_builtins,
    get_x509_chain_verifier,
)
from .key_description import KeyDescription

logger = logging.getLogger(__name__)

OID_KEY_DESCRIPTION = x509.ObjectIdentifier("1.3.6.1.4.1.11129.2.1.17")


def _load_certificate(value: Any) -> x509.Certificate:
    if isinstance(value, x509.Certificate):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        if data.lstrip().startswith(b"-----BEGIN"):
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    raise TypeError(
        "Certificates must be cryptography Certificate objects or encoded bytes, "
        f"not {type(value).__name__}"
    )


def _find_first_extension(tbs_certificate: bytes) -> Optional[bytes]:
    tbs = asn1.decode(tbs_certificate, rfc5280.TBSCertificate())
    for extension in tbs["extensions"]:
        if str(extension["extnID"]) == OID_KEY_DESCRIPTION.dotted_string:
            return extension["extnValue"].asOctets()
    return None


@catch_builtins
def find_extension_data(certificate: x509.Certificate) -> bytes:
    """Return the DER encoded KeyDescription carried by a certificate.

    If the extension occurs more than once, the first occurrence is used.
    Other extensions are not interpreted, so a malformed or repeated extension
    elsewhere in the certificate does not prevent the lookup.
    """
    try:
        extensions = certificate.extensions
    except x509.DuplicateExtension as e:
        logger.debug("Certificate repeats extension %s, scanning raw TBS", e.oid)
        data = _find_first_extension(certificate.tbs_certificate_bytes)
    except ValueError as e:
        logger.debug("Certificate extensions unreadable (%s), scanning raw TBS", e)
        data = _find_first_extension(certificate.tbs_certificate_bytes)
    else:
        data = None
        for extension in extensions:
            if extension.oid == OID_KEY_DESCRIPTION:
                data = extension.value.value
                break

    if data is None:
        raise ExtensionMissingError(
            "Certificate has no key attestation extension "
            f"({OID_KEY_DESCRIPTION.dotted_string})"
        )
    return data


def _delegate(name: str) -> property:
    def getter(self):
        return getattr(self.key_description, name)

    getter.__name__ = name
    getter.__doc__ = f"The ``{name}`` field of the key description."
    return property(getter)


class Statement:
    """An Android key attestation, given as a certificate chain.

    The first certificate is the attestation certificate carrying the key
    description, followed by its issuers in order towards the root. The key
    description is decoded the first time one of its fields is accessed.
    """

    EXTENSION_DATA_OID = OID_KEY_DESCRIPTION

    def __init__(self, *certificates: Any):
        if not certificates:
            raise ValueError("At least one certificate is required")
        self._certificates: Tuple[x509.Certificate, ...] = tuple(
            _load_certificate(c) for c in certificates
        )
        self._key_description: Optional[KeyDescription] = None
        self._lock = Lock()

    @property
    def certificates(self) -> Tuple[x509.Certificate, ...]:
        return self._certificates

    @property
    def attestation_certificate(self) -> x509.Certificate:
        return self._certificates[0]

    @property
    def key_description(self) -> KeyDescription:
        if self._key_description is None:
            with self._lock:
                if self._key_description is None:
                    data = find_extension_data(self.attestation_certificate)
                    self._key_description = KeyDescription.parse(data)
        return self._key_description

    attestation_version = _delegate("attestation_version")
    attestation_security_level = _delegate("attestation_security_level")
    keymaster_version = _delegate("keymaster_version")
    keymaster_security_level = _delegate("keymaster_security_level")
    attestation_challenge = _delegate("attestation_challenge")
    unique_id = _delegate("unique_id")
    software_enforced = _delegate("software_enforced")
    tee_enforced = _delegate("tee_enforced")

    def verify_challenge(self, challenge) -> bool:
        """Check that the attestation was created for the given challenge.

        The comparison runs in constant time for challenges of equal length.

        :param challenge: The challenge sent to the device, as bytes or str.
        :return: True if the challenge matches.
        :raises ChallengeMismatchError: If it does not.
        """
        if isinstance(challenge, str):
            challenge = challenge.encode("utf-8")
        elif isinstance(challenge, (bytearray, memoryview)):
            challenge = bytes(challenge)
        elif not isinstance(challenge, bytes):
            raise TypeError(
                f"challenge must be bytes or str, not {type(challenge).__name__}"
            )

        if not bytes_eq(self.key_description.attestation_challenge, challenge):
            logger.warning("Attestation challenge mismatch")
            raise ChallengeMismatchError("Attestation challenge does not match")
        return True

    def verify_certificate_chain(
        self,
        root_certificates: Optional[Iterable[Any]] = None,
        time: Optional[datetime] = None,
    ) -> bool:
        """Verify the certificate chain up to one of the given roots.

        No roots are trusted by default, so omitting root_certificates always
        fails.

        :param root_certificates: Trusted root certificates.
        :param time: The time at which all certificates must be valid. Defaults
            to the current time; naive datetimes are taken to be UTC.
        :return: True if the chain is valid.
        :raises CertificateVerificationError: If it is not, or if a root
            certificate cannot be loaded.
        """
        subject = self.attestation_certificate.subject.rfc4514_string()
        try:
            roots = [_load_certificate(c) for c in root_certificates or ()]
        except (ValueError, TypeError) as e:
            logger.warning("Unusable root certificate given to verify %s: %s", subject, e)
            raise CertificateVerificationError(
                f"Invalid root certificate: {e}", reason=str(e), subject=subject
            ) from e

        if not roots:
            logger.warning("No trusted roots given to verify %s", subject)
            raise CertificateVerificationError(
                "No trusted root certificates supplied",
                reason="no trusted roots",
                subject=subject,
            )

        if time is None:
            time = datetime.now(timezone.utc)

        try:
            get_x509_chain_verifier()(self._certificates, roots, time)
        except CertificateVerificationError:
            raise
        except (VerificationError, ValueError, TypeError) as e:
            logger.warning("Certificate chain verification failed for %s: %s", subject, e)
            raise CertificateVerificationError(
                f"Certificate chain verification failed: {e}",
                reason=str(e),
                subject=subject,
            ) from e
        return True

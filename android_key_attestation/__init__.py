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

"""Verification of Android hardware key attestation certificates."""

from .authorization_list import (  # noqa: F401
    Algorithm,
    AuthorizationList,
    BlockMode,
    Digest,
    EcCurve,
    KeyPurpose,
    Origin,
    Padding,
    RootOfTrust,
    VerifiedBootState,
)
from .base import (  # noqa: F401
    CertificateVerificationError,
    ChallengeMismatchError,
    DecodeError,
    ExtensionMissingError,
    InvalidAttestation,
    InvalidData,
    UntrustedAttestation,
    set_x509_chain_verifier,
    verify_x509_chain,
)
from .key_description import (  # noqa: F401
    KeyDescription,
    SecurityLevel,
    parse_key_description,
)
from .statement import OID_KEY_DESCRIPTION, Statement, find_extension_data  # noqa: F401

__version__ = "1.0.0"

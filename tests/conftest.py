from __future__ import annotations

from typing import Callable, Optional

import pytest

from cryptography import x509

from .builders import (
    Authority,
    key_description_der,
    make_intermediate,
    make_leaf,
    make_root,
)


@pytest.fixture(scope="session")
def root() -> Authority:
    return make_root()


@pytest.fixture(scope="session")
def intermediate(root) -> Authority:
    return make_intermediate(root)


@pytest.fixture(scope="session")
def make_attestation_certificate(intermediate) -> Callable[..., x509.Certificate]:
    """Factory for leaf certificates issued by the test intermediate."""

    def factory(extension_data: Optional[bytes] = None, **kwargs) -> x509.Certificate:
        return make_leaf(intermediate, extension_data, **kwargs)

    return factory


@pytest.fixture(scope="session")
def attestation_certificate(make_attestation_certificate) -> x509.Certificate:
    return make_attestation_certificate(key_description_der())

"""
Pytest configuration for zk-mdl-kit tests.
"""
from __future__ import annotations

import os

import pytest

from crypto.keys import generate_keypair, public_jwk
from helpers import FakeClock

# Set test environment before Settings is read anywhere
os.environ.setdefault("ENVIRONMENT", "testing")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="session")
def reader_key():
    return generate_keypair()


@pytest.fixture(scope="session")
def issuer_key():
    return generate_keypair()


@pytest.fixture(scope="session")
def holder_key():
    return generate_keypair()


@pytest.fixture
def holder_public_jwk(holder_key):
    return public_jwk(holder_key)

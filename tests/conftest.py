import os
import sys

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
for path in (PROJECT_ROOT, os.path.dirname(__file__)):
    if path not in sys.path:
        sys.path.append(path)

from fakes import FakeLedger, FakeSigner, new_address  # noqa: E402


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def addresses():
    return [new_address() for _ in range(5)]

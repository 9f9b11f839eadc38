"""Shared test fixtures."""

import shutil
import tempfile

import pytest

from NormalAudit.config import AuditConfig
from NormalAudit.core import PixelBuffer

from synthetic import wave_buffer


@pytest.fixture
def tmp_dir():
    d = tempfile.mkdtemp()
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def default_config():
    return AuditConfig()


@pytest.fixture
def consistent_buffer() -> PixelBuffer:
    """Undecoded 32x32 buffer whose normals and heights agree exactly."""
    return wave_buffer()

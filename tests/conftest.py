from datetime import datetime, timezone

import pytest

from toolgate.types.config import ValidationContext
from toolgate.utils.logger import MemoryLogger, SilentLogger


FIXED_TIME = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_context(tool_name="read_file", arguments=None, **kwargs):
    return ValidationContext(
        tool_name=tool_name,
        arguments=arguments if arguments is not None else {},
        call_id=kwargs.pop("call_id", "call_test"),
        timestamp=kwargs.pop("timestamp", FIXED_TIME),
        **kwargs,
    )


@pytest.fixture
def logger():
    return SilentLogger()


@pytest.fixture
def memory_logger():
    return MemoryLogger()

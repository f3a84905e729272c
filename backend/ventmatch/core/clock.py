# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Clock and identifier sources injected into the services.

Services never call datetime.now() or uuid4() directly so tests can drive
time and ids deterministically.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]
IdGenerator = Callable[[], str]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Fresh random identifier."""
    return str(uuid.uuid4())

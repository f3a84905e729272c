# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import logging
import sys


def setup_logging(level: int = logging.INFO) -> None:
    """Configure simple logging format"""
    logging.basicConfig(
        format="%(asctime)s %(levelname)-4s : %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=level,
    )

    # Route server logs through the root handler
    for name in ["uvicorn", "uvicorn.error", "fastapi"]:
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("uvicorn.access").propagate = False

    # python-socketio / engineio are chatty at INFO
    for name in ["socketio", "engineio"]:
        logging.getLogger(name).setLevel(logging.WARNING)

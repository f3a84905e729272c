# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
SQLAlchemy declarative base shared by every ventmatch model.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

__all__ = ["Base"]

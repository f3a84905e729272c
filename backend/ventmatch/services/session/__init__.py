# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from ventmatch.services.session.content_filter import ContentFilter
from ventmatch.services.session.manager import SessionManager
from ventmatch.services.session.notifier import NullNotifier, SessionNotifier

__all__ = ["ContentFilter", "NullNotifier", "SessionManager", "SessionNotifier"]

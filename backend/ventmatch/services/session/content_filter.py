# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from ventmatch.core.exceptions import ValidationError


class ContentFilter:
    """Validates chat content before it reaches the session manager."""

    def __init__(self, max_length: int = 1000):
        self.max_length = max_length

    def check(self, content: str) -> str:
        """
        Return the trimmed content.

        Raises:
            ValidationError: Empty content or content over the length limit
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content cannot be empty")
        if len(text) > self.max_length:
            raise ValidationError(
                f"Message is too long (maximum {self.max_length} characters)"
            )
        return text

"""Engagement scoring weights and thresholds.

All weights are integers so that rankings never depend on floating-point
rounding. The scorer records every contribution separately, which makes a
score auditable per signal.
"""

from typing import Final

# Volume
MESSAGE_WEIGHT: Final[int] = 10
"""Points per message authored in the window (base score)."""

# Content signals (messages the user sent)
REPLY_SENT_WEIGHT: Final[int] = 5
"""Points per message that replies to another message.

Business rule: replying shows the user takes part in conversations instead of
broadcasting.
"""

LONG_MESSAGE_WEIGHT: Final[int] = 3
"""Points per message longer than LONG_MESSAGE_MIN_CHARS characters."""

LONG_MESSAGE_MIN_CHARS: Final[int] = 100
"""Text length that must be exceeded for the content-depth bonus.

Example:
    - 100 characters → no bonus
    - 101 characters → +3
"""

FORWARD_WEIGHT: Final[int] = 2
"""Points per message forwarded from another channel (content sharing)."""

# Influence signals (what the user's messages generated)
REPLY_RECEIVED_WEIGHT: Final[int] = 8
"""Points per reply received on one of the user's messages.

Business rule: starting a discussion is worth more than joining one, so
received replies outweigh sent replies.
"""

REACTION_RECEIVED_WEIGHT: Final[int] = 2
"""Points per reaction received on one of the user's messages."""

# Consistency
CONSISTENCY_BONUS: Final[int] = 15
"""Flat bonus for users active across many hours of the day."""

CONSISTENCY_MIN_DISTINCT_HOURS: Final[int] = 5
"""Distinct active hours that must be exceeded for the consistency bonus.

Example:
    - active in 5 distinct hours → no bonus
    - active in 6+ distinct hours → +15
"""

HOURS_PER_DAY: Final[int] = 24

# Component names used in EngagementScore.components
COMPONENT_MESSAGES: Final[str] = "messages"
COMPONENT_REPLIES_SENT: Final[str] = "replies_sent"
COMPONENT_LONG_MESSAGES: Final[str] = "long_messages"
COMPONENT_FORWARDS: Final[str] = "forwards"
COMPONENT_REPLIES_RECEIVED: Final[str] = "replies_received"
COMPONENT_REACTIONS_RECEIVED: Final[str] = "reactions_received"
COMPONENT_CONSISTENCY: Final[str] = "consistency_bonus"

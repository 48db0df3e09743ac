# Slack integration
from threadmine.integrations.slack.client import SlackClient
from threadmine.integrations.slack.models import (
    SlackAuth,
    SlackChannelRef,
    SlackRecord,
    SlackSearchMatch,
    SlackThreadMessage,
    decode_slack_record,
)
from threadmine.integrations.slack.parser import ParsedPermalink, parse_permalink, thread_ts_from_permalink

__all__ = [
    "SlackClient",
    "SlackAuth",
    "SlackChannelRef",
    "SlackRecord",
    "SlackSearchMatch",
    "SlackThreadMessage",
    "decode_slack_record",
    "ParsedPermalink",
    "parse_permalink",
    "thread_ts_from_permalink",
]

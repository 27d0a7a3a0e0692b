from api.src.services.github import (
    verify_signature,
    parse_webhook_payload,
    push_event_from_payload,
)
from api.src.services.trigger import (
    PushEvent,
    TriggerListener,
    match_rule,
    branch_matches,
)
from api.src.services.dispatch import create_dispatcher, get_dispatcher

__all__ = [
    "verify_signature",
    "parse_webhook_payload",
    "push_event_from_payload",
    "PushEvent",
    "TriggerListener",
    "match_rule",
    "branch_matches",
    "create_dispatcher",
    "get_dispatcher",
]

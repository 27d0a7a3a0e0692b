"""
Trigger listener - decides whether a push event starts a pipeline run.

A branch matches a rule when the rule's pattern matches the whole branch
name, so "main" matches "^main$" and "main" but never "main-2". Rules are
checked in creation order and the first match fires. An event that matches
no rule is ignored: unrelated branches are pushed all the time.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol

from controller.src.worker import RunDispatcher, RunRequest

logger = logging.getLogger(__name__)

class Rule(Protocol):
    id: str
    name: str
    branch_pattern: str
    pipeline_ref: str
    service_identity: str
    repository: Optional[str]

@dataclass
class PushEvent:
    branch: str
    commit_sha: str
    repository: str = ""
    clone_url: Optional[str] = None
    pusher: str = ""

def branch_matches(pattern: str, branch: str) -> bool:
    try:
        return re.fullmatch(pattern, branch) is not None
    except re.error as e:
        logger.error(f"Invalid branch pattern {pattern!r}: {e}")
        return False

def rule_matches(rule: Rule, event: PushEvent) -> bool:
    if rule.repository and rule.repository != event.repository:
        return False
    return branch_matches(rule.branch_pattern, event.branch)

def match_rule(rules: Iterable[Rule], event: PushEvent) -> Optional[Rule]:
    """First rule matching the event, or None."""
    matched = [rule for rule in rules if rule_matches(rule, event)]
    if len(matched) > 1:
        logger.warning(
            f"Branch {event.branch} matches {len(matched)} triggers "
            f"({', '.join(r.name for r in matched)}); using {matched[0].name}"
        )
    return matched[0] if matched else None

def substitution_overrides(rule: Rule, event: PushEvent) -> Dict[str, str]:
    return {
        "BUILD_ID": event.commit_sha,
        "PROJECT_ID": rule.service_identity,
        "BRANCH_NAME": event.branch,
        "COMMIT_SHA": event.commit_sha,
        "SHORT_SHA": event.commit_sha[:7],
        "REPO_NAME": event.repository.rsplit("/", 1)[-1],
    }

class TriggerListener:
    def __init__(self, dispatcher: RunDispatcher):
        self.dispatcher = dispatcher

    def handle_push(self, event: PushEvent, rules: Iterable[Rule]) -> Optional[str]:
        """
        Start a run for the first matching rule.
        Returns the run id, or None when no rule matches.
        """
        rule = match_rule(rules, event)
        if rule is None:
            logger.info(f"No trigger matches {event.repository or '-'}:{event.branch}, ignoring push")
            return None

        logger.info(f"Trigger {rule.name} matched {event.branch}@{event.commit_sha[:7]}")
        request = RunRequest(
            pipeline_ref=rule.pipeline_ref,
            overrides=substitution_overrides(rule, event),
            clone_url=event.clone_url,
            commit_sha=event.commit_sha,
            branch=event.branch,
            trigger_id=rule.id,
        )
        return self.dispatcher.submit(request)

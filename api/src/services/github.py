"""
GitHub service for webhook validation and payload parsing.
"""

import hmac
import hashlib
from typing import Optional, Dict, Any

from api.src.services.trigger import PushEvent

def verify_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """Verify GitHub webhook signature."""
    if not secret:
        # Skip verification if no secret configured (development)
        return True

    if not signature:
        return False

    expected = "sha256=" + hmac.new(
        secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)

def parse_webhook_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Extract relevant info from GitHub webhook payload."""
    repo = payload.get("repository") or {}
    head_commit = payload.get("head_commit") or {}

    # Get branch from ref (refs/heads/main -> main)
    ref = payload.get("ref", "")
    branch = ref.replace("refs/heads/", "", 1) if ref.startswith("refs/heads/") else ref

    return {
        "repo_name": repo.get("name", ""),
        "repo_full_name": repo.get("full_name", ""),
        "clone_url": repo.get("clone_url", ""),
        "commit_sha": head_commit.get("id", payload.get("after", "")),
        "branch": branch,
        "commit_message": head_commit.get("message", ""),
        "pusher": (payload.get("pusher") or {}).get("name", ""),
        "deleted": bool(payload.get("deleted", False)),
        "is_branch": ref.startswith("refs/heads/"),
    }

def push_event_from_payload(payload: Dict[str, Any]) -> PushEvent:
    data = parse_webhook_payload(payload)
    return PushEvent(
        branch=data["branch"],
        commit_sha=data["commit_sha"],
        repository=data["repo_full_name"],
        clone_url=data["clone_url"] or None,
        pusher=data["pusher"],
    )

"""
Fetch pushed source into a run's working directory.
"""

import logging
import subprocess
from typing import Optional

from controller.src.errors import SourceError

logger = logging.getLogger(__name__)

def clone_repository(clone_url: str, commit_sha: Optional[str], dest: str, timeout: float = 120) -> str:
    """
    Clone repository into `dest` (an empty directory) and check out the commit.
    Returns `dest`.
    """
    logger.info(f"Cloning {clone_url} at {commit_sha or 'HEAD'} into {dest}")

    try:
        # Clone the repository
        subprocess.run(
            ["git", "clone", "--depth", "1", clone_url, dest],
            check=True,
            capture_output=True,
            timeout=timeout,
        )

        # Checkout specific commit if provided
        if commit_sha:
            subprocess.run(
                ["git", "fetch", "--depth", "1", "origin", commit_sha],
                cwd=dest,
                capture_output=True,
                timeout=timeout,
            )
            subprocess.run(
                ["git", "checkout", commit_sha],
                cwd=dest,
                check=True,
                capture_output=True,
                timeout=timeout,
            )

        return dest
    except FileNotFoundError:
        raise SourceError("git is not installed")
    except subprocess.TimeoutExpired:
        raise SourceError(f"Repository clone timed out after {timeout}s")
    except subprocess.CalledProcessError as e:
        raise SourceError(f"Failed to clone repository: {e.stderr.decode(errors='replace').strip()}")

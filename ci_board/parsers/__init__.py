"""Bundled parser adapters."""

from __future__ import annotations

from typing import Dict

# name -> module.ClassName, for the ``class`` key of adapter config entries
BUILTIN_PARSERS: Dict[str, str] = {
    "jenkins": "ci_board.parsers.jenkins.JenkinsParser",
}

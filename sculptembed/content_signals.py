"""Content signatures that commonly trip gateway/WAF rules.

Two lists live here: exploit signatures that are checked before a file is
ever sent (a match skips the file), and a broader set of signals attached to
failure details when a chunk is isolated as blocked.
"""

import re
from typing import List, Pattern, Sequence, Tuple

WAF_BLOCK_PATTERNS: Sequence[Tuple[str, Pattern[str]]] = (
    ("phpunit", re.compile(r"\bphpunit\b", re.IGNORECASE)),
    ("eval-stdin", re.compile(r"eval-stdin", re.IGNORECASE)),
    ("traversal", re.compile(r"\.\.(/|\\)|%2e%2e|%252e%252e", re.IGNORECASE)),
    ("php-exploit", re.compile(r"\\think\\app|invokefunction|call_user_func|pearcmd", re.IGNORECASE)),
    ("wp-exploit", re.compile(r"wp-file-manager.*connector|wp-content.*plugins.*php", re.IGNORECASE)),
    ("fortinet-exploit", re.compile(r"fgt_lang.*sslvpn|cmdb.*sslvpn", re.IGNORECASE)),
)

_SIGNAL_PATTERNS: Sequence[Tuple[str, Pattern[str]]] = (
    ("pem", re.compile(r"-----BEGIN [^-]{0,80}-----", re.IGNORECASE)),
    ("ssh-key", re.compile(r"\bssh-(?:rsa|ed25519|dss)\s+[A-Za-z0-9+/=]{80,}")),
    ("jwt", re.compile(r"\beyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\b")),
    ("base64", re.compile(r"[A-Za-z0-9+/]{200,}={0,2}")),
    ("phpunit", re.compile(r"\bphpunit\b", re.IGNORECASE)),
    ("sqlmap", re.compile(r"\bsqlmap\b", re.IGNORECASE)),
    ("nmap", re.compile(r"\bnmap\b", re.IGNORECASE)),
    ("metasploit", re.compile(r"\bmetasploit\b", re.IGNORECASE)),
    ("hashcat", re.compile(r"\bhashcat\b", re.IGNORECASE)),
    ("hydra", re.compile(r"\bhydra\b", re.IGNORECASE)),
    ("script-tag", re.compile(r"<\s*/?\s*script\b", re.IGNORECASE)),
    ("php-tag", re.compile(r"<\?\s*php", re.IGNORECASE)),
    ("traversal", re.compile(r"\.\.(/|\\)")),
    ("union-select", re.compile(r"\bunion\s+select\b", re.IGNORECASE)),
    ("base64_decode", re.compile(r"\bbase64_decode\b", re.IGNORECASE)),
    ("openai-key", re.compile(r"\bsk-[A-Za-z0-9]{20,}\b")),
    ("gh-token", re.compile(r"\b(?:ghp_[A-Za-z0-9]{30,}|github_pat_[A-Za-z0-9_]{20,})\b")),
    ("bearer", re.compile(r"\bBearer\s+[A-Za-z0-9._-]{30,}\b", re.IGNORECASE)),
    ("cve", re.compile(r"\bCVE-\d{4}-\d{3,7}\b", re.IGNORECASE)),
    ("curl", re.compile(r"\bcurl\b", re.IGNORECASE)),
    ("wget", re.compile(r"\bwget\b", re.IGNORECASE)),
    ("powershell", re.compile(r"\bpowershell\b", re.IGNORECASE)),
    ("cmd", re.compile(r"\bcmd\.exe\b", re.IGNORECASE)),
    ("rm-rf", re.compile(r"\brm\s+-rf\b", re.IGNORECASE)),
    ("chmod", re.compile(r"\bchmod\b", re.IGNORECASE)),
    ("chown", re.compile(r"\bchown\b", re.IGNORECASE)),
    ("etc-passwd", re.compile(r"/etc/passwd\b", re.IGNORECASE)),
    ("xss", re.compile(r"\bxss\b", re.IGNORECASE)),
    ("csrf", re.compile(r"\bcsrf\b", re.IGNORECASE)),
    ("sql-injection", re.compile(r"\bsql\s+injection\b", re.IGNORECASE)),
)

MAX_SIGNALS_IN_LABEL = 6


def match_waf_block_patterns(text: str) -> List[str]:
    """Names of exploit signatures found in ``text``; non-empty means skip the file."""
    return [name for name, pattern in WAF_BLOCK_PATTERNS if pattern.search(text or "")]


def detect_waf_signals(text: str) -> List[str]:
    """Names of every content signal found in ``text``, in a stable order."""
    return [name for name, pattern in _SIGNAL_PATTERNS if pattern.search(text or "")]


def format_signals_label(signals: Sequence[str]) -> str:
    """Short log suffix such as `` (pem, jwt +3)``; empty when there are no signals."""
    if not signals:
        return ""
    clipped = list(signals[:MAX_SIGNALS_IN_LABEL])
    suffix = f" +{len(signals) - MAX_SIGNALS_IN_LABEL}" if len(signals) > MAX_SIGNALS_IN_LABEL else ""
    return f" ({', '.join(clipped)}{suffix})"

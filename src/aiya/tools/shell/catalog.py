"""Policy catalog for shell command security.

Static, compiled-once tables consumed by the categorizer, sanitizer,
boundary enforcer and error categorizer:

- Four command tiers (blocked, dangerous, risky, safe) as
  ``PolicyPattern`` triples of (pattern, category, priority)
- Shell-expansion and path-traversal detection patterns
- Timeouts, limits, exit codes and error priorities
- Default shell tool configuration values

Tier patterns are matched case-insensitively against the trimmed
command. ``priority`` orders the tiers; inside a tier the declaration
order decides which pattern is reported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from aiya.tools.shell.models import CommandCategory


class Timeouts:
    """Timeouts in seconds."""
    DEFAULT_COMMAND_EXECUTION = 30
    MAX_COMMAND_EXECUTION = 300
    CONFIRMATION_PROMPT = 30
    SESSION_MEMORY_TTL = 30 * 60


class Limits:
    """Size and count limits."""
    MAX_COMMAND_LENGTH = 1000
    MAX_BUFFER_SIZE = 1024 * 1024
    MAX_EVENTS_IN_MEMORY = 1000
    MAX_EXECUTION_LOGS = 500
    MAX_SESSION_DECISIONS = 100
    MAX_TOP_RESULTS = 10


class ExitCode:
    """Exit codes reported by the shell tool."""
    SUCCESS = 0
    GENERAL_ERROR = 1
    PERMISSION_DENIED = 126
    COMMAND_NOT_FOUND = 127
    INPUT_VALIDATION = 400
    SECURITY_VIOLATION = 403
    TIMEOUT = -1


class ErrorPriority:
    """Priorities for error categorization. Highest match wins."""
    PERMISSION = 100
    TIMEOUT = 95
    NOT_FOUND = 90
    SECURITY = 85
    WORKSPACE = 85
    INPUT_VALIDATION = 80
    EXECUTION = 70
    CONFIGURATION = 60
    UNKNOWN = 10


@dataclass(frozen=True)
class PolicyPattern:
    """A compiled catalog entry.

    Attributes:
        regex: Compiled pattern (case-insensitive).
        category: Tier the pattern belongs to.
        priority: Tier precedence, higher is checked first.
        description: Reason reported when the pattern matches.
    """
    regex: re.Pattern[str]
    category: CommandCategory
    priority: int
    description: str

    @property
    def pattern(self) -> str:
        return self.regex.pattern

    def matches(self, command: str) -> bool:
        return self.regex.search(command) is not None


# Start of a command segment: beginning of input, or after a chain,
# pipe, subshell or substitution opener.
_SEG = r"(?:^|[;&|(`]|\$\()\s*"
# Optional privilege prefix in front of a command name.
_PRIV = r"(?:(?:sudo|doas)\s+(?:-\S+\s+)*)?"
_AT_CMD = _SEG + _PRIV
# End of a shell word.
_END = r"(?=$|[\s;&|)`])"
_RM = r"\brm\s+(?:-\S+\s+)*"
_SYSTEM_DIRS = r"(?:bin|boot|dev|etc|home|lib|lib32|lib64|opt|proc|root|sbin|srv|sys|usr|var)"


BLOCKED_PATTERNS: list[tuple[str, str]] = [
    (_RM + r"/\*?" + _END, "Deletion of the filesystem root"),
    (_RM + r"/" + _SYSTEM_DIRS + r"/?\*?" + _END, "Deletion of a system directory"),
    (_RM + r"(?:~|\$HOME|\$\{HOME\})/?\*?" + _END, "Deletion of the home directory"),
    (r"\bdd\s+[^;&|]*\bif=/dev/(?:zero|random|urandom)\b", "Disk overwrite with dd"),
    (r"\bdd\s+[^;&|]*\bof=/dev/(?:sd|hd|vd|xvd|nvme|mmcblk|disk)", "dd onto a block device"),
    (r">\s*/dev/(?:sd[a-z]|hd[a-z]|vd[a-z]|xvd[a-z]|nvme\d|mmcblk\d|disk\d)", "Redirect onto a block device"),
    (r"\bmkfs(?:\.\w+)?\b", "Filesystem creation"),
    (_AT_CMD + r"(?:fdisk|sfdisk|gdisk|parted|wipefs)\b", "Disk partitioning"),
    (_AT_CMD + r"format\s+[a-z]:", "Drive format"),
    (r"(?:^|[\s;&|])(:|\w+)\s*\(\s*\)\s*\{\s*\1\s*\|\s*\1\s*&", "Fork bomb"),
    (r"\bwhile\s+(?:true|:|1)\s*;\s*do\b", "Unbounded loop"),
    (r"\bfor\s*\(\(\s*;\s*;\s*\)\)", "Unbounded loop"),
    (_AT_CMD + r"(?:shutdown|reboot|halt|poweroff)\b", "System power state change"),
    (_AT_CMD + r"(?:init|telinit)\s+[06]\b", "Runlevel change"),
    (r"\btruncate\s+[^;&|]*-s\s*0\s+/", "Truncation of an absolute path"),
    (r"\b(?:shred|wipe|srm)\b[^;&|]*\s/", "Secure wipe of an absolute path"),
    (r"\b(?:curl|wget)\b[^;&]*\|\s*(?:sudo\s+)?(?:ba|da|k|z)?sh\b", "Remote script piped to a shell"),
    (r"\b(?:curl|wget)\b[^;&]*\|\s*(?:sudo\s+)?(?:python[23]?|perl|ruby|node)\b", "Remote script piped to an interpreter"),
    (r"\bbase64\s+(?:-d|-D|--decode)\b[^;&]*\|\s*(?:ba|da|k|z)?sh\b", "Encoded payload piped to a shell"),
    (r"\bchmod\s+(?:-\S+\s+)*[0-7]?777\s+/\*?" + _END, "World-writable filesystem root"),
    (r"\bchown\s+(?:-\S+\s+)*\S+\s+/\*?" + _END, "Ownership change of the filesystem root"),
]

DANGEROUS_PATTERNS: list[tuple[str, str]] = [
    (r"\brm\s+(?:[^;&|\s]+\s+)*?(?:-[a-z]*r[a-z]*|--recursive)" + _END, "Recursive delete"),
    (r"\b(?:sudo|doas|pkexec)\b", "Privilege escalation"),
    (_SEG + r"su(?=$|\s)", "User switch"),
    (r"\bchmod\s+(?:-\S+\s+)*[0-7]?777\b", "World-writable permissions"),
    (r"\bchmod\s+(?:-\S+\s+)*(?:[ugoa]*\+[rwxt]*s|[2467][0-7]{3})\b", "Setuid or setgid bit"),
    (r"\bchown\s+(?:-\S*R|--recursive)", "Recursive ownership change"),
    (r"\bdd\s+[^;&|]*\b(?:if|of)=", "Raw copy with dd"),
    (_SEG + r"(?:systemctl|service|launchctl)\b", "Service management"),
    (r"\bkill\s+(?:-9|-KILL|-SIGKILL|-s\s+(?:9|KILL|SIGKILL))" + _END, "Forced process kill"),
    (_SEG + r"(?:killall|pkill)\b", "Bulk process kill"),
    (_SEG + r"(?:passwd|chpasswd|useradd|userdel|usermod|groupadd|visudo)\b", "Account management"),
    (_SEG + r"(?:iptables|ip6tables|ufw|nft)\b", "Firewall change"),
    (_SEG + r"(?:mount|umount)\b", "Filesystem mount"),
    (r"\bcrontab\s+-r\b", "Crontab removal"),
    (r"\b(?:nc|ncat|netcat)\b[^;&|]*\s-[a-z]*[le]\b", "Network listener or remote shell"),
    (_SEG + r"eval\b", "Dynamic evaluation"),
    (r"\bgit\s+push\b[^;&|]*\s(?:-f|--force(?:-with-lease)?)" + _END, "Force push"),
    (r"\bgit\s+reset\b[^;&|]*\s--hard\b", "Hard reset"),
    (r"\bgit\s+clean\b[^;&|]*\s-[a-z]*f", "Forced clean of untracked files"),
    (r">\s*/(?:etc|usr|bin|sbin|boot|lib)/", "Write into a system directory"),
]

RISKY_PATTERNS: list[tuple[str, str]] = [
    (_SEG + r"(?:npm|pnpm|yarn)\s+(?:install|i|add|ci|remove|rm|uninstall|update|upgrade|"
     r"publish|link|run|run-script|build|exec|dlx|init|create)\b", "Package manager modification or script"),
    (_SEG + r"(?:npx|bunx)\b", "Package runner"),
    (_SEG + r"(?:pip3?|pipx|uv|poetry|gem|cargo|go)\s+(?:install|uninstall|add|remove|get|update|upgrade|sync)\b",
     "Package installation"),
    (_SEG + r"git\s+(?:add|commit|push|pull|merge|rebase|checkout|switch|reset|restore|stash|"
     r"cherry-pick|revert|clone|fetch|tag|rm|mv|clean|apply|am|init)\b", "Git repository modification"),
    (_SEG + r"git\s+branch\b[^;&|]*\s-[a-z]*[dm]\b", "Git branch modification"),
    (_SEG + r"(?:mkdir|rmdir|touch|cp|mv|ln|rm|install|rsync)\b", "Filesystem modification"),
    (_SEG + r"(?:tar|zip|unzip|gzip|gunzip|bzip2|xz|7z)\b", "Archive operation"),
    (_SEG + r"(?:chmod|chown|chgrp)\b", "Permission change"),
    (_SEG + r"(?:curl|wget|scp|ssh|sftp|ftp|telnet|nc)\b", "Network access"),
    (_SEG + r"sed\b[^;&|]*\s-(?:[a-z]*i|-in-place)", "In-place file edit"),
    (r"\bfind\b[^;&|]*\s-(?:delete|exec|execdir|ok|okdir)\b", "find with side effects"),
    (r"\bawk\b[^;&|]*\bsystem\s*\(", "awk invoking a shell"),
    (r"\bxargs\b", "Command execution via xargs"),
    (_SEG + r"(?:make|cmake|docker|podman|kubectl|terraform)\b", "Build or infrastructure tool"),
    (_SEG + r"(?:python[0-9.]*|node|ruby|perl|php|bash|sh|zsh)\b", "Script interpreter"),
]

SAFE_PATTERNS: list[tuple[str, str]] = [
    (r"^(?:ls|ll|pwd|tree|du|df|stat|file|realpath|readlink|basename|dirname)(?=$|\s)", "Read-only filesystem listing"),
    (r"^(?:cat|head|tail|less|more|wc|sort|uniq|cut|diff|cmp)(?=$|\s)", "Read-only file inspection"),
    (r"^(?:grep|egrep|fgrep|rg|find|awk|sed)(?=$|\s)", "Read-only search or text processing"),
    (r"^(?:echo|printf|true|false|sleep)(?=$|\s)", "Output or no-op builtin"),
    (r"^(?:which|whereis|type|date|whoami|id|uname|hostname|printenv)(?=$|\s)", "System information query"),
    (r"^env\s*$", "Environment listing"),
    (r"^git\s+(?:status|log|diff|show|branch|remote|rev-parse|ls-files|blame|describe|shortlog|reflog)(?=$|\s)",
     "Read-only git command"),
    (r"^(?:npm|yarn|pnpm)\s+(?:test|ls|list|outdated|view|info|why)(?=$|\s)", "Package inspection or tests"),
    (r"^(?:node|python[0-9.]*|npm|yarn|git|go|cargo|rustc|java)\s+(?:--version|-v|-V)\s*$", "Version query"),
]


def _compile_tier(
    category: CommandCategory, entries: list[tuple[str, str]]
) -> tuple[PolicyPattern, ...]:
    return tuple(
        PolicyPattern(
            regex=re.compile(pattern, re.IGNORECASE),
            category=category,
            priority=category.severity,
            description=description,
        )
        for pattern, description in entries
    )


# Tiers in strict precedence order: blocked, dangerous, risky, safe
POLICY_TIERS: tuple[tuple[PolicyPattern, ...], ...] = tuple(
    sorted(
        (
            _compile_tier(CommandCategory.BLOCKED, BLOCKED_PATTERNS),
            _compile_tier(CommandCategory.DANGEROUS, DANGEROUS_PATTERNS),
            _compile_tier(CommandCategory.RISKY, RISKY_PATTERNS),
            _compile_tier(CommandCategory.SAFE, SAFE_PATTERNS),
        ),
        key=lambda tier: tier[0].priority,
        reverse=True,
    )
)


def patterns_for(category: CommandCategory) -> tuple[PolicyPattern, ...]:
    """Return the compiled patterns of one tier."""
    for tier in POLICY_TIERS:
        if tier[0].category is category:
            return tier
    return ()


# Shell expansion detection: (compiled regex, finding name)
SHELL_EXPANSION_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"`[^`]*`"), "backtick command substitution"),
    (re.compile(r"\$\("), "command substitution"),
    (re.compile(r"\$\{[^}]*\}"), "parameter expansion"),
    (re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*"), "variable expansion"),
    (re.compile(r"\*\*"), "recursive glob"),
    (re.compile(r"\?\?+"), "multi-character wildcard"),
    (re.compile(r"(?:^|\s)!(?:!|-?\d+|\$|[A-Za-z])"), "history expansion"),
    (re.compile(r"<\("), "input process substitution"),
    (re.compile(r">\("), "output process substitution"),
]

PATH_TRAVERSAL_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?:^|[\s/\\=\"'])\.\.(?=$|[\s/\\\"';&|])"), "parent directory reference"),
    (re.compile(r"%2e%2e(?:[/\\]|%2f|%5c)", re.IGNORECASE), "encoded parent directory reference"),
]

# Any of these makes a command compound rather than simple
COMPOUND_OPERATOR_PATTERN = re.compile(r"[;&|`<>\n]|\$\(")

NETWORK_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(?:curl|wget|ssh|scp|sftp|ftp|rsync|nc|ncat|netcat|telnet|ping|dig|nslookup)\b"),
    re.compile(r"\b(?:https?|ftp|ssh)://", re.IGNORECASE),
]

# Path prefixes reported by name in workspace violations
SYSTEM_DIRECTORY_PREFIXES: tuple[str, ...] = (
    "/etc", "/usr", "/bin", "/sbin", "/var", "/root", "/home",
    "/boot", "/dev", "/proc", "/sys", "/lib", "/opt",
)

# Device paths that commands may always reference
HARMLESS_SYSTEM_PATHS: frozenset[str] = frozenset({
    "/dev/null", "/dev/stdin", "/dev/stdout", "/dev/stderr", "/dev/tty",
})


DEFAULT_SHELL_CONFIG: dict[str, Any] = {
    "trusted_patterns": [],
    "always_block_patterns": [],
    "require_confirmation_for_risky": True,
    "require_confirmation_for_dangerous": True,
    "allow_dangerous": False,
    "allow_complex_commands": True,
    "session_memory": True,
    "max_execution_time": Timeouts.DEFAULT_COMMAND_EXECUTION,
    "confirmation_timeout": Timeouts.CONFIRMATION_PROMPT,
    "max_output_bytes": Limits.MAX_BUFFER_SIZE,
}

"""Command sanitizer.

Detects shell expansion and injection constructs in raw command input and
extracts the paths a command refers to. Everything here is a pure function
of the command string: no I/O, no state.
"""

import re
import shlex

from aiya.tools.shell.catalog import (
    COMPOUND_OPERATOR_PATTERN,
    NETWORK_PATTERNS,
    PATH_TRAVERSAL_PATTERNS,
    SHELL_EXPANSION_PATTERNS,
    Limits,
)
from aiya.tools.shell.errors import ShellInputValidationError
from aiya.tools.shell.models import InjectionReport


class CommandSanitizer:
    """Input checks and shell-construct detection.

    ``detect_injection`` is a signal for the command filter. A finding
    raises the effective category of a command but does not block it.
    """

    # Control characters other than tab and newline
    CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
    # Splits `--opt=/path` and `if=/dev/zero` style arguments
    ASSIGNMENT_SPLIT = re.compile(r"=")
    # Leading option letters of `-o/tmp/out` or `--file~/x` style words
    OPTION_PREFIX = re.compile(r"^-{1,2}[A-Za-z0-9-]*")
    # Bodies of `$(...)` and backtick substitutions kept inside one word
    SUBSTITUTION_BODY = re.compile(r"\$\((.*)\)|`([^`]*)`", re.DOTALL)
    ENV_REFERENCE = re.compile(r"\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?")
    OPERATOR_TOKENS = frozenset({";", "&", "&&", "|", "||", "(", ")", "<", ">", ">>", "<<", "&>", ">&", ";;", "|&"})

    def __init__(self, max_length: int = Limits.MAX_COMMAND_LENGTH):
        self.max_length = max_length

    def validate_input(self, command: str) -> str:
        """Validate raw input and return the trimmed command.

        Raises:
            ShellInputValidationError: For non-string, empty, over-long or
                control-character input.
        """
        if not isinstance(command, str):
            raise ShellInputValidationError("Command must be a string")
        stripped = command.strip()
        if not stripped:
            raise ShellInputValidationError("Command cannot be empty")
        if len(stripped) > self.max_length:
            raise ShellInputValidationError(
                f"Command exceeds maximum length of {self.max_length} characters"
            )
        if self.CONTROL_CHARS.search(stripped):
            raise ShellInputValidationError("Command contains control characters")
        return stripped

    def detect_injection(self, command: str) -> InjectionReport:
        """Scan for substitution, expansion, glob doubling and history expansion."""
        found = [name for regex, name in SHELL_EXPANSION_PATTERNS if regex.search(command)]
        return InjectionReport(suspicious=bool(found), patterns=tuple(found))

    def is_simple_command(self, command: str) -> bool:
        """True when the command has no chaining, pipes, redirects or substitution."""
        return COMPOUND_OPERATOR_PATTERN.search(command) is None

    def has_path_traversal(self, command: str) -> bool:
        return any(regex.search(command) for regex, _ in PATH_TRAVERSAL_PATTERNS)

    def has_network_operations(self, command: str) -> bool:
        return any(regex.search(command) for regex in NETWORK_PATTERNS)

    def normalize(self, command: str) -> str:
        """Trim and collapse runs of whitespace."""
        return " ".join(command.split())

    def tokenize(self, command: str) -> list[str]:
        """Split a command into shell words with operators separated.

        Falls back to whitespace splitting for unbalanced quotes.
        """
        lexer = shlex.shlex(command, posix=True, punctuation_chars=True)
        lexer.whitespace_split = True
        lexer.commenters = ""
        try:
            return list(lexer)
        except ValueError:
            return command.split()

    def extract_file_paths(self, command: str) -> list[str]:
        """Return words that look like filesystem paths.

        A word is path-like when it is absolute, home-relative, references
        ``$HOME`` or contains a ``..`` segment. Option values after ``=``,
        values glued onto an option (``-o/tmp/out``) and the bodies of
        quoted command substitutions are inspected as well.
        """
        paths: list[str] = []
        for token in self.tokenize(command):
            if token in self.OPERATOR_TOKENS:
                continue
            candidates = [token]
            if "=" in token:
                candidates.extend(self.ASSIGNMENT_SPLIT.split(token)[1:])
            if token.startswith("-"):
                candidates.append(self.OPTION_PREFIX.sub("", token, count=1))
            for match in self.SUBSTITUTION_BODY.finditer(token):
                body = match.group(1) if match.group(1) is not None else match.group(2)
                candidates.extend(self.extract_file_paths(body))
            for candidate in candidates:
                if self._is_path_like(candidate) and candidate not in paths:
                    paths.append(candidate)
        return paths

    def extract_env_variables(self, command: str) -> list[str]:
        names: list[str] = []
        for name in self.ENV_REFERENCE.findall(command):
            if name not in names:
                names.append(name)
        return names

    @staticmethod
    def _is_path_like(word: str) -> bool:
        if not word:
            return False
        if word.startswith(("/", "~", "$HOME", "${HOME}")):
            return True
        return ".." in re.split(r"[/\\]", word)

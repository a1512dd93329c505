"""
Destructive command detection.

Rule-based and side-effect free, so it can run before every execution and
inside the what-if simulator. The rules are plain ordered data; add entries
to the tuples below rather than branching in ``classify_command``.
"""

from dataclasses import dataclass

# Commands that require confirmation when they start the command line, follow
# a pipe, or follow ``sudo ``.
DANGEROUS_COMMANDS: tuple[str, ...] = (
    # File deletion
    "rm", "rmdir", "unlink", "shred",
    # System control
    "shutdown", "reboot", "poweroff", "halt", "init",
    # Disk/filesystem
    "mkfs", "fdisk", "parted", "dd", "format", "mkswap",
    # Package removal
    "apt-get remove", "apt remove", "apt-get purge", "apt purge",
    "yum remove", "dnf remove", "pacman -r",
    # Permission/ownership
    "chmod 777", "chmod -r", "chown -r", "chgrp -r",
    # Firewall
    "iptables -f", "ufw disable",
    # Process control
    "kill -9", "killall", "pkill",
    # Fork bomb
    ":(){",
    # User management
    "userdel", "deluser", "passwd",
    # Elevated privileges
    "sudo",
)

# Substrings that are dangerous anywhere in the command line
DANGEROUS_PATTERNS: tuple[str, ...] = (
    "> /dev/", ">/dev/",
    "> /etc/", ">/etc/",
    "> /boot/", ">/boot/",
    "| rm", "|rm",
    "| dd", "|dd",
    "rf /", "rf ~/", "rf ~", "rf .",
    "mv /* ", "mv / ",
    "> /",
    "| tee /", "|tee /",
    "chmod 000",
    ":(){ :",
    "/dev/null >",
    "/dev/zero",
    "/dev/random",
)

# Verbs that are dangerous whenever ``sudo`` also appears, in any position
SUDO_DESTRUCTIVE_VERBS: tuple[str, ...] = ("rm", "dd", "mkfs", "chmod", "chown", "mv", "cp")


@dataclass(frozen=True)
class DangerVerdict:
    """Result of classifying one command"""

    is_dangerous: bool
    matched_rules: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.is_dangerous


def _command_positions(dangerous: str) -> tuple[str, ...]:
    return (f"| {dangerous}", f"|{dangerous}", f"sudo {dangerous}")


def classify_command(command: str) -> DangerVerdict:
    """Check a command against every rule family.

    Args:
        command: The shell command exactly as it would be executed

    Returns:
        DangerVerdict listing every matched rule identifier
    """
    lower = command.lower()
    matched: list[str] = []

    for dangerous in DANGEROUS_COMMANDS:
        if lower.startswith(dangerous) or any(p in lower for p in _command_positions(dangerous)):
            matched.append(f"command:{dangerous}")

    for pattern in DANGEROUS_PATTERNS:
        if pattern in lower:
            matched.append(f"pattern:{pattern}")

    if "sudo" in lower:
        for verb in SUDO_DESTRUCTIVE_VERBS:
            if verb in lower:
                matched.append(f"sudo+{verb}")

    return DangerVerdict(is_dangerous=bool(matched), matched_rules=tuple(matched))


def is_dangerous(command: str) -> bool:
    return classify_command(command).is_dangerous

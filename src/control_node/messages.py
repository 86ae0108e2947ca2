"""User-facing message catalog for the control node integration."""

MESSAGES: dict[str, str] = {
    "ansible.control_node_not_responding": (
        "The Ansible control node is not responding. Please try again later."
    ),
    "ansible.salt_error": "An error occurred on the Ansible control node: {0}",
    "ansible.not_found": "The requested item could not be found.",
    "taskscheduler.down": (
        "The task scheduler is not responding. Please try scheduling again later."
    ),
}


def get_message(key: str, *args: object) -> str:
    """Look up a message by key and fill positional placeholders.

    Unknown keys come back as the key itself so callers never fail on a
    missing translation.
    """
    template = MESSAGES.get(key, key)
    return template.format(*args) if args else template

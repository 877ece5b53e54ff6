"""Fatal provisioning errors."""


class SetupError(RuntimeError):
    """Unrecoverable failure in the provisioning workflow.

    Raised from library code with a message meant for the operator. CLI
    handlers log it and exit with status 1.
    """

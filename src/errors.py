"""Exception types shared across archvm-driver."""


class ArchVMError(Exception):
    """Base class for archvm-driver errors."""


class ConfigError(ArchVMError):
    """Configuration error."""


class ContextError(ArchVMError):
    """Installation context is missing a value a step needs."""


class MediaError(ArchVMError):
    """Installation media or disk image could not be prepared."""


class MissingCredentialMaterial(ArchVMError):
    """No usable SSH key pair was found."""


class SpawnError(ArchVMError):
    """The virtual machine process could not be started."""


class SessionLogError(ArchVMError):
    """The session log file could not be opened."""


class PatternTimeout(ArchVMError):
    """An expected prompt did not appear in time."""

    def __init__(self, step_index: int, pattern: str):
        super().__init__(f"Timed out at step {step_index} waiting for {pattern!r}")
        self.step_index = step_index
        self.pattern = pattern


class UnexpectedProcessExit(ArchVMError):
    """The spawned process exited before the script completed."""

    def __init__(self, code, step_index: int):
        super().__init__(f"Process exited with status {code} at step {step_index}")
        self.code = code
        self.step_index = step_index

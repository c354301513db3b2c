"""
Exception classes
"""


class WorkflowError(Exception):
    """
    Error raised by workflow and process implementation.
    """


class ValidationError(WorkflowError):
    """
    Structural error in the workflow graph. Always raised before any
    external command is started.
    """


class UnknownPort(ValidationError):
    """
    Thrown when a port is not declared on the node it is looked up on.
    """


class PortKindMismatch(ValidationError):
    """
    Thrown when connecting ports of different kinds (file vs parameter),
    or ports facing the wrong direction.
    """


class PortAlreadyConnected(ValidationError):
    """
    Thrown when an in-port that already has an upstream is connected again.
    """


class MulticastWithoutFanOut(ValidationError):
    """
    Thrown when an out-port feeds more than one in-port directly.
    """


class UnconnectedFanOutTarget(ValidationError):
    """
    Thrown when a FanOut out-port has no downstream connection.
    """


class UnconnectedPort(ValidationError):
    """
    Thrown when a port that has to be connected is left dangling.
    """


class MissingPathStrategy(ValidationError):
    """
    Thrown when a process out-port has no path strategy assigned.
    """


class CyclicGraph(ValidationError):
    """
    Thrown when the connections between nodes form a cycle.
    """


class TaskError(WorkflowError):
    """
    Runtime error of a single task. Fatal to the whole run.
    """


class SuffixNotFound(TaskError):
    """
    Thrown when a suffix-replace path strategy gets an input path that does
    not end with the expected suffix.
    """

    def __init__(self, path: str, suffix: str, process: str | None = None, port: str | None = None):
        self.path = path
        self.suffix = suffix
        self.process = process
        self.port = port
        where = f'{process}.{port}: ' if process else ''
        super().__init__(f'{where}path "{path}" does not end with suffix "{suffix}"')


class TaskExecutionFailed(TaskError):
    """
    Thrown when the external command of a task exits with a non-zero status.
    """

    def __init__(self, process: str, command: str, exit_status: int):
        self.process = process
        self.command = command
        self.exit_status = exit_status
        super().__init__(f'{process}: command exited with status {exit_status}: {command}')


class OutputPathCollision(TaskError):
    """
    Thrown when two tasks of one run resolve the same output path.
    """

    def __init__(self, path: str, first: str, second: str):
        self.path = path
        self.first = first
        self.second = second
        super().__init__(f'Output path {path} of {second} is already claimed by {first}')

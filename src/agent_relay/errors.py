"""
Exception taxonomy for the inference engine.

Tool-level errors (ToolExecutionError, ToolParameterError, AgentCycleError)
never leave the tool loop: they are converted into tool_response content
the model can read. Everything else is surfaced to the caller.
"""


class AgentRelayError(Exception):
    """Base class for all agent-relay errors."""


class NotFoundError(AgentRelayError):
    """A referenced agent, tool, knowledge base or thread does not exist."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f'{kind} "{key}" not found')


class UnsupportedProviderError(AgentRelayError):
    """No adapter exists for the requested provider name."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported provider: {provider}")


class InvalidModelIdentifierError(AgentRelayError):
    """A model identifier is not of the form ``provider/model``."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(
            f'Invalid model identifier "{identifier}", expected "provider/model"'
        )


class ProviderError(AgentRelayError):
    """The model backend failed (network, API or protocol error)."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class InferenceCancelledError(AgentRelayError):
    """The caller's cancellation signal fired during a turn."""


class MaxToolIterationsError(AgentRelayError):
    """The model kept requesting tools past the configured round limit."""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(f"Max tool iterations exceeded ({max_iterations})")


class ToolExecutionError(AgentRelayError):
    """A tool failed while running."""


class ToolParameterError(AgentRelayError):
    """The model supplied parameters that do not fit the tool's schema."""


class AgentCycleError(ToolExecutionError):
    """A sub-agent call would re-enter an agent already on the call stack."""

    def __init__(self, agent_name: str, stack: list[str]):
        self.agent_name = agent_name
        self.stack = stack
        path = " -> ".join([*stack, agent_name])
        super().__init__(f"Agent cycle detected: {path}")

class AgentError(Exception):
    pass


class NotInitializedError(AgentError):
    def __init__(self):
        super().__init__("telemetry agent is not initialized; call init(config) first")


class AlreadyInitializedError(AgentError):
    def __init__(self):
        super().__init__("telemetry agent is already initialized; call shutdown() first")

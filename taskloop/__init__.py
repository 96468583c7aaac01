# taskloop package
#
# Orchestration core for a tool-using coding agent: a task state machine
# that streams model replies into a conversation store, gates on the user
# through asks, and coordinates tool execution between request rounds.
#
#   from taskloop import (
#       TaskExecutor, InMemoryConversationStore, AskManager, ToolExecutor,
#   )
#
# Lazy loading: imports are deferred via __getattr__ so importing a single
# submodule (e.g. taskloop.trace) does not pull in the whole package.

# Mapping from public name -> (module_path, attribute_name)
_LAZY_IMPORTS = {
    # Task lifecycle
    "TaskExecutor": (".task_executor", "TaskExecutor"),
    "TaskConfig": (".config", "TaskConfig"),
    "load_config": (".config", "load_config"),
    # Collaborators
    "AskManager": (".ask_manager", "AskManager"),
    "OutputBuffer": (".output_buffer", "OutputBuffer"),
    "ChunkProcessor": (".chunk_processor", "ChunkProcessor"),
    "ConversationStore": (".store", "ConversationStore"),
    "InMemoryConversationStore": (".store", "InMemoryConversationStore"),
    "StreamProvider": (".provider", "StreamProvider"),
    "ToolCoordinator": (".tools.protocol", "ToolCoordinator"),
    "ToolExecutor": (".tools.executor", "ToolExecutor"),
    # Cancellation
    "CancelToken": (".cancel", "CancelToken"),
    "CancelledException": (".cancel", "CancelledException"),
    # Errors
    "ErrorType": (".errors", "ErrorType"),
    "ProviderError": (".errors", "ProviderError"),
    "TaskError": (".errors", "TaskError"),
    "TaskAbortingError": (".errors", "TaskAbortingError"),
    "TaskBusyError": (".errors", "TaskBusyError"),
    "classify_error": (".errors", "classify_error"),
    # Types
    "TaskState": (".types", "TaskState"),
    "AskKind": (".types", "AskKind"),
    "SayKind": (".types", "SayKind"),
    "AskResponseKind": (".types", "AskResponseKind"),
    "ApprovalState": (".types", "ApprovalState"),
    "ApiMetrics": (".types", "ApiMetrics"),
    "ChatMessage": (".types", "ChatMessage"),
    "ConversationEntry": (".types", "ConversationEntry"),
    "TextBlock": (".types", "TextBlock"),
    "ImageBlock": (".types", "ImageBlock"),
    "StreamDelta": (".types", "StreamDelta"),
    "StreamSuccessEnd": (".types", "StreamSuccessEnd"),
    "StreamErrorEnd": (".types", "StreamErrorEnd"),
    "ToolResult": (".types", "ToolResult"),
    # Utilities
    "trace": (".trace", "trace"),
}

__all__ = list(_LAZY_IMPORTS)


def __getattr__(name):
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        import importlib
        module = importlib.import_module(module_path, __name__)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

from joinery.utils.logging_utils import (
    add_join_fields,
    bind_log_context,
    clear_log_context,
    get_logger,
    setup_logging,
)
from joinery.utils.trace import (
    Transition,
    TransitionRecorder,
    print_transitions,
    render_transitions,
)

__all__ = [
    "setup_logging",
    "add_join_fields",
    "get_logger",
    "bind_log_context",
    "clear_log_context",
    "Transition",
    "TransitionRecorder",
    "render_transitions",
    "print_transitions",
]

from .instrument import log_stage
from .logging import bind_run_context, configure_logging

__all__ = ["bind_run_context", "configure_logging", "log_stage"]

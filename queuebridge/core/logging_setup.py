"""Logging setup helpers."""

from queuebridge.core.action_logging import make_log_action, make_log_exception


def build_loggers(display_tz, log_dir, action_log_file, system_log_file):
    """Create queue action/system log writers and the exception logger."""
    log_queue_action = make_log_action(display_tz, log_dir, action_log_file)
    log_queue_system = make_log_action(display_tz, log_dir, system_log_file)
    log_queue_exception = make_log_exception(log_queue_system)
    return log_queue_action, log_queue_system, log_queue_exception

from .activity_log import get_activity_logger, log_activity, log_event

__all__ = ["get_activity_logger", "log_activity", "log_event"]

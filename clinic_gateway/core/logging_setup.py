import logging
from clinic_gateway.core.trace import trace_id_var

LOG_FORMAT = "%(asctime)s [%(levelname)s] [trace_id=%(trace_id)s] %(message)s"


class TraceLogFilter(logging.Filter):
    def filter(self, record):
        record.trace_id = trace_id_var.get() or "-"
        return True


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    # root logger filters do not see records propagated from child loggers
    for handler in root.handlers:
        if not any(isinstance(f, TraceLogFilter) for f in handler.filters):
            handler.addFilter(TraceLogFilter())

# utils/loggers.py
import logging
import os

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name="invoice_ledger", level=None):
    """
    Package logger with a single stderr handler.

    Repository modules log through children of this logger
    (logging.getLogger(__name__)), so configuring it once covers the package.
    INVOICE_LEDGER_LOG_LEVEL overrides the default INFO level.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        lvl = level or os.environ.get("INVOICE_LEDGER_LOG_LEVEL", "INFO")
        logger.setLevel(str(lvl).upper() if isinstance(lvl, str) else lvl)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(ch)
    return logger

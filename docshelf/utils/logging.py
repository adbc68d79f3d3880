import logging

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("docshelf")
    if logger.handlers:
        return logger
    logger.setLevel(level)
    h = logging.StreamHandler()
    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    h.setFormatter(fmt)
    logger.addHandler(h)
    return logger

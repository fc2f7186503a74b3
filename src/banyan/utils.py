import logging
import sys

__all__ = ["set_debug"]

_HANDLER_NAME = "banyan-debug"


def set_debug(enabled: bool) -> None:
    """
    Turn debug logging of the package on or off. When it's on, the
    records of the `banyan` loggers are written to the standard error.

    :param bool enabled: True to turn the debug logging on.
    :raises TypeError: if the parameter is not bool.
    """
    if not isinstance(enabled, bool):
        raise TypeError("Parameter must be bool.")
    logger = logging.getLogger("banyan")
    handlers = [hdl for hdl in logger.handlers if hdl.get_name() == _HANDLER_NAME]
    if enabled:
        logger.setLevel(logging.DEBUG)
        if not handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.set_name(_HANDLER_NAME)
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(name)s %(levelname)s: %(message)s")
            )
            logger.addHandler(handler)
    else:
        logger.setLevel(logging.NOTSET)
        for handler in handlers:
            logger.removeHandler(handler)

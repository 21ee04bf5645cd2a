"""
HatchSync component logging.

All components log through the stdlib ``logging`` tree under the
``HatchSync`` namespace, so handlers configured once by
``shared.logging_config.configure_logging`` pick everything up.

This module provides a factory to create log functions with a component prefix,
eliminating the need to repeat logger lookups in every module.

Usage:
    from shared.log import create_logger
    log_trace, log_debug, log_info, log_warn, log_error = create_logger("Queue")
    log_info("Synced 3 entries")  # -> HatchSync.Queue: [HatchSync Queue] Synced 3 entries
"""

import logging

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def create_logger(component: str = ""):
    """Create log functions for a component.

    Args:
        component: Component name suffix. If provided, prefix becomes
                   "[HatchSync {component}]" and the logger name
                   "HatchSync.{component}", otherwise "[HatchSync]" / "HatchSync".

    Returns:
        Tuple of (log_trace, log_debug, log_info, log_warn, log_error) functions.
    """
    prefix = f"[HatchSync {component}]" if component else "[HatchSync]"
    logger = logging.getLogger(f"HatchSync.{component}" if component else "HatchSync")

    def log_trace(msg): logger.log(TRACE, f"{prefix} {msg}")
    def log_debug(msg): logger.debug(f"{prefix} {msg}")
    def log_info(msg): logger.info(f"{prefix} {msg}")
    def log_warn(msg): logger.warning(f"{prefix} {msg}")
    def log_error(msg): logger.error(f"{prefix} {msg}")

    return log_trace, log_debug, log_info, log_warn, log_error

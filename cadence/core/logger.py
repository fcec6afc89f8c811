"""Logger configuration for cadence.

Every cadence message starts with a component tag ("[PRELOAD] ...",
"[TEMPLATE_UPDATE] ...") and carries its details as bound context
(`logger.bind(day_key=...)`). The patcher installed here lifts the tag into
`extra["component"]` and renders the bound fields into `extra["context"]`,
so sinks can filter on the component and print context as key=value pairs.
"""

import re
import sys
from collections.abc import Callable, Iterable
from pathlib import Path

from loguru import logger

_COMPONENT_TAG = re.compile(r"^\[([A-Z_]+)\]")
_RESERVED_EXTRA = {"component", "context"}

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[component]: <15}</magenta> | <level>{message}</level> <dim>{extra[context]}</dim>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[component]: <15} | {message} {extra[context]}"


def tag_component(record: dict) -> None:
    """Patcher: fill extra["component"] and extra["context"] for the sinks.

    Untagged records (third-party libraries, ad-hoc messages) fall back to the
    last segment of the emitting module name.
    """
    extra = record["extra"]
    match = _COMPONENT_TAG.match(record["message"])
    if "component" not in extra:
        module = record["name"] or "cadence"
        extra["component"] = match.group(1) if match else module.rsplit(".", 1)[-1].upper()
    extra["context"] = " ".join(f"{k}={v}" for k, v in extra.items() if k not in _RESERVED_EXTRA)


def component_filter(components: Iterable[str] | None) -> Callable[[dict], bool] | None:
    """Build a sink filter keeping only the given component tags (None keeps all)."""
    if components is None:
        return None
    wanted = {c.upper() for c in components}
    return lambda record: record["extra"].get("component") in wanted


def setup_logger(
    level: str = "INFO",
    log_file: str | None = None,
    components: Iterable[str] | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """Configure loguru with console and optional file output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If None, only console logging.
        components: Component tags the file sink keeps (e.g. {"PRELOAD"}); None keeps all
        rotation: Log rotation size (e.g., "10 MB", "1 day")
        retention: Log retention period (e.g., "7 days", "1 month")
    """
    logger.remove()
    logger.configure(patcher=tag_component)

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            format=FILE_FORMAT,
            level=level,
            filter=component_filter(components),
            rotation=rotation,
            retention=retention,
            compression="zip",
            diagnose=False,
        )

    logger.bind(component="LOGGING").info(f"Logger initialized with level={level}")


def setup_logger_from_settings() -> None:
    """Configure the logger from LOG_LEVEL, CADENCE_LOG_FILE and CADENCE_LOG_COMPONENTS."""
    from cadence.config.settings import settings

    setup_logger(
        level=settings.log_level,
        log_file=settings.log_file,
        components=[c.strip() for c in settings.log_components.split(",") if c.strip()] or None,
    )

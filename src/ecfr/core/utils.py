import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

NOISY_LOGGERS = ["urllib3", "sqlalchemy.engine", "charset_normalizer"]


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for CLI entry points."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_logging_level(level: int) -> None:
    """Set logging level for all ecfr loggers.

    Args:
        level: The logging level to set
    """
    loggers = [logging.getLogger(name) for name in logging.root.manager.loggerDict]
    for logger in loggers:
        if logger.name.startswith("ecfr") or "__main__" == logger.name:
            logger.setLevel(level)

    logging.basicConfig(format=LOG_FORMAT)


def parse_title_numbers(titles_input) -> Optional[list[int]]:
    """
    Parse title numbers that can contain individual titles or ranges.

    Args:
        titles_input: List of strings that can be individual titles or ranges like "1-5"

    Returns:
        Sorted list of distinct title numbers, or None when no input was given

    Examples:
        parse_title_numbers(["40", "21"]) -> [21, 40]
        parse_title_numbers(["1-3"]) -> [1, 2, 3]
        parse_title_numbers(["1-3", "40"]) -> [1, 2, 3, 40]
    """
    if titles_input is None:
        return None

    all_titles = []

    for item in titles_input:
        item_str = str(item)

        if "-" in item_str:
            try:
                start, end = (int(part) for part in item_str.split("-"))
            except ValueError:
                raise ValueError(f"Invalid title range format: {item_str}. Use format like '1-5'.")

            if start > end:
                raise ValueError(f"Invalid title range: {item_str}. Start must be <= end.")

            all_titles.extend(range(start, end + 1))
        else:
            try:
                all_titles.append(int(item_str))
            except ValueError:
                raise ValueError(f"Invalid title: {item_str}. Must be a valid integer.")

    return sorted(set(all_titles))

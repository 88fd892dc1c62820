import logging
import os
import sys

from owners_check.utils import config

OWNERS_CHECK_CONFIG = "OWNERS_CHECK_CONFIG"
OWNERS_CHECK_LOG_LEVEL = "OWNERS_CHECK_LOG_LEVEL"

LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def log_fmt(dry_run: bool | None = None) -> str:
    log_fmt = (
        "[%(asctime)s] [%(levelname)s] [DRY-RUN] "
        if dry_run
        else "[%(asctime)s] [%(levelname)s] "
    )

    log_fmt += "[%(filename)s:%(funcName)s:%(lineno)d] - %(message)s"

    return log_fmt


def init_logging(log_level: str | None = None, dry_run: bool | None = None) -> None:
    # store the level in the environment so child processes inherit it
    if log_level:
        os.environ[OWNERS_CHECK_LOG_LEVEL] = log_level

    logging.basicConfig(
        format=log_fmt(dry_run=dry_run),
        datefmt=LOG_DATEFMT,
        level=getattr(logging, os.environ.get(OWNERS_CHECK_LOG_LEVEL, "INFO")),
    )


def init_env(
    log_level: str | None = None,
    config_file: str | None = None,
    dry_run: bool | None = None,
) -> None:
    init_logging(log_level=log_level, dry_run=dry_run)

    if config_file:
        os.environ[OWNERS_CHECK_CONFIG] = config_file

    config_file = os.environ.get(OWNERS_CHECK_CONFIG)
    if not config_file:
        logging.fatal("no config file for owners-check specified")
        sys.exit(1)
    config.init_from_toml(config_file)

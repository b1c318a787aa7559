#!/usr/bin/env python3
"""
Logging setup: console + monitor.log, and a separate purchases.log
"""
import logging
from pathlib import Path
from typing import Dict, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PURCHASE_LOGGER = 'purchases'


def setup_logging(logging_settings: Optional[Dict] = None):
    """Configure root logging and the purchase logger"""
    logging_settings = logging_settings or {}
    log_dir = Path(logging_settings.get('log_dir', 'logs'))
    log_dir.mkdir(parents=True, exist_ok=True)

    level = str(logging_settings.get('level', 'INFO')).upper()
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_dir / 'monitor.log'),
            logging.StreamHandler()
        ]
    )

    purchase_logger = logging.getLogger(PURCHASE_LOGGER)
    if not any(isinstance(h, logging.FileHandler) for h in purchase_logger.handlers):
        purchase_handler = logging.FileHandler(log_dir / 'purchases.log')
        purchase_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
        )
        purchase_logger.addHandler(purchase_handler)
    purchase_logger.setLevel(logging.INFO)

    # aiohttp access noise
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    return logging.getLogger('restock_monitor')

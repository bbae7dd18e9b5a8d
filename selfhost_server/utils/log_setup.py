"""
Process-wide logging initialisation, called once from the entry point.
"""

import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = 'INFO') -> logging.Logger:
    """Configure the root logger and return it.

    Replaces any handlers installed earlier so repeated calls do not
    duplicate output.
    """
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    # Pool checkout chatter is only interesting when debugging
    logging.getLogger('sqlalchemy.pool').setLevel(
        logging.DEBUG if level == 'DEBUG' else logging.WARNING
    )
    return logging.getLogger()

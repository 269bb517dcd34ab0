"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup shared by the API server
and the training script.
"""

import os
import logging

DEFAULT_MODEL_PATH = 'network_data.json'
DEFAULT_EPOCHS = 5000
DEFAULT_PORT = 8000


def get_model_path() -> str:
    """Path of the JSON file holding the persisted network."""
    return os.getenv('GRIDNET_MODEL_PATH', DEFAULT_MODEL_PATH)


def get_epochs() -> int:
    """Number of training epochs used when creating a network."""
    value = os.getenv('GRIDNET_EPOCHS')
    if not value:
        return DEFAULT_EPOCHS
    try:
        epochs = int(value)
    except ValueError:
        logging.getLogger(__name__).warning(
            f"Ignoring invalid GRIDNET_EPOCHS={value!r}, "
            f"using {DEFAULT_EPOCHS}"
        )
        return DEFAULT_EPOCHS
    return max(epochs, 0)


def get_port() -> int:
    return int(os.getenv('PORT', DEFAULT_PORT))


def is_production() -> bool:
    return os.getenv('FLASK_ENV') == 'production'


def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep our logs visible
    if is_production():
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('gridnet').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)

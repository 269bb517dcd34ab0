"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for the digit grid network.

This module provides endpoints for:
- Recognizing digits drawn on the 10x10 grid
- Creating and training the network with real-time progress updates
- Saving and loading the network file
- Previewing the canonical training patterns

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- A JSON file for network persistence
"""

import sys
import uuid
import base64
import logging
from io import BytesIO
from typing import Any, Dict, List, Optional

import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from gridnet import config
from gridnet.errors import InvalidInputShape
from gridnet.grid import Grid
from gridnet.model_persistence import load_network, save_network
from gridnet.network import Network
from gridnet.patterns import GRID_SIZE, NUM_CLASSES, create_digit_pattern
from gridnet.trainer import create_and_train_network, train_network

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ('pending', 'training')
FINISHED_STATUSES = ('completed', 'failed')

# Finished jobs kept around so clients can still poll their result
MAX_FINISHED_JOBS = 20


# ============================================================================
# SERVER STATE
# ============================================================================

class NetworkState(object):
    """
    Everything the server keeps between requests.

    Stored on the Flask app as ``app.extensions['gridnet']`` so that every
    app instance has its own network and jobs.
    """

    def __init__(self, model_path: str, epochs: int):
        self.model_path = model_path
        self.epochs = epochs
        self.network: Optional[Network] = None
        # {job_id: job_info}
        self.training_jobs: Dict[str, Dict[str, Any]] = {}

    def active_job(self) -> Optional[Dict[str, Any]]:
        for job in self.training_jobs.values():
            if job.get('status') in ACTIVE_STATUSES:
                return job
        return None

    def network_busy(self) -> bool:
        """True while a job is mutating the current network."""
        job = self.active_job()
        return job is not None and job['mode'] == 'continue'


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in array.flatten()]


def create_grid_image(cells: np.ndarray, title: str) -> str:
    """
    Create a base64-encoded PNG image of a grid.

    Args:
        cells: GRID_SIZE * GRID_SIZE values, row-major
        title: Caption drawn above the grid

    Returns:
        Base64-encoded PNG image string
    """
    plt.figure(figsize=(3, 3))
    plt.imshow(np.asarray(cells).reshape(GRID_SIZE, GRID_SIZE),
               cmap='gray_r', vmin=0, vmax=1)
    plt.title(title)
    plt.axis('off')

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


def read_json_object() -> Optional[Dict[str, Any]]:
    """
    Return the JSON request body as a dict.

    A missing or unparsable body counts as an empty object; a body that is
    valid JSON but not an object returns None.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        return None
    return data


def parse_epochs(data: Dict[str, Any], default: int) -> Optional[int]:
    """Return the requested epoch count, or None if it is invalid."""
    epochs = data.get('epochs', default)
    if isinstance(epochs, bool) or not isinstance(epochs, int) or epochs < 1:
        return None
    return epochs


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

def train_network_task(
    socketio: SocketIO,
    state: NetworkState,
    job_id: str,
    epochs: int
) -> None:
    """
    Background task that trains the network.

    Sends progress updates via WebSocket as training progresses. A 'create'
    job trains a fresh network and swaps it in when done; a 'continue' job
    keeps training the current one in place.
    """
    job = state.training_jobs[job_id]

    def on_progress(data: Dict[str, Any]) -> None:
        """Called every few epochs to send progress updates."""
        if data['total_epochs']:
            progress = (data['epoch'] / data['total_epochs']) * 100
        else:
            progress = 100

        job['status'] = 'training'
        job['progress'] = progress

        socketio.emit('training_update', {
            'job_id': job_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress
        })

        # Let other tasks (HTTP requests, socket messages) run
        socketio.sleep(0)

    try:
        logger.info(f"Starting {job['mode']} training for job {job_id}")

        if job['mode'] == 'create':
            net = create_and_train_network(epochs, callback=on_progress)
        else:
            net = train_network(state.network, epochs, callback=on_progress)

        state.network = net
        saved = save_network(net, state.model_path)

        job['status'] = 'completed'
        job['progress'] = 100
        job['saved'] = saved

        logger.info(f"Training completed for job {job_id}, saved={saved}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'status': 'completed',
            'saved': saved,
            'progress': 100
        })
        socketio.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        job['status'] = 'failed'
        job['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'status': 'failed',
            'error': str(e)
        })
        socketio.sleep(0)


def cleanup_finished_training_jobs(state: NetworkState) -> None:
    """
    Remove the oldest completed or failed jobs beyond MAX_FINISHED_JOBS.

    Active jobs are never removed.
    """
    finished = [
        job_id for job_id, job_info in state.training_jobs.items()
        if job_info.get('status') in FINISHED_STATUSES
    ]
    jobs_to_remove = finished[:max(len(finished) - MAX_FINISHED_JOBS, 0)]

    for job_id in jobs_to_remove:
        del state.training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_training_job(
    socketio: SocketIO,
    state: NetworkState,
    mode: str,
    epochs: int
) -> str:
    """Register a training job and run it in the background."""
    cleanup_finished_training_jobs(state)

    job_id = str(uuid.uuid4())
    state.training_jobs[job_id] = {
        'job_id': job_id,
        'mode': mode,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }

    logger.info(f"Created {mode} training job {job_id}: epochs={epochs}")

    socketio.start_background_task(
        train_network_task, socketio, state, job_id, epochs
    )
    return job_id


# ============================================================================
# API ENDPOINTS
# ============================================================================

def register_routes(app: Flask, socketio: SocketIO, state: NetworkState) -> None:
    """Attach the REST endpoints to ``app``."""

    @app.route('/api/status', methods=['GET'])
    def get_status():
        """Return server status, whether a network is loaded and active jobs."""
        active_training = sum(
            1 for job in state.training_jobs.values()
            if job.get('status') in ACTIVE_STATUSES
        )

        return jsonify({
            'status': 'online',
            'network_loaded': state.network is not None,
            'training_jobs': active_training
        }), 200

    @app.route('/api/network', methods=['GET'])
    def get_network():
        """Describe the current network."""
        if state.network is None:
            return jsonify({'error': 'Network not initialized'}), 404

        net = state.network
        return jsonify({
            'architecture': net.sizes,
            'learning_rate': net.learning_rate,
            'activation': 'sigmoid',
            'model_path': state.model_path
        }), 200

    @app.route('/api/network', methods=['POST'])
    def create_network():
        """
        Create a fresh network and train it in the background.

        Request body (optional):
            {'epochs': 5000}

        Returns:
            JSON with job_id and status
        """
        data = read_json_object()
        if data is None:
            return jsonify({'error': 'Request body must be a JSON object'}), 400
        epochs = parse_epochs(data, state.epochs)
        if epochs is None:
            return jsonify({'error': 'epochs must be a positive integer'}), 400

        if state.active_job() is not None:
            return jsonify({'error': 'A training job is already running'}), 409

        job_id = start_training_job(socketio, state, 'create', epochs)
        return jsonify({
            'job_id': job_id,
            'status': 'training_started'
        }), 202

    @app.route('/api/network/train', methods=['POST'])
    def continue_training():
        """
        Keep training the current network in the background.

        Request body (optional):
            {'epochs': 5000}
        """
        if state.network is None:
            logger.warning("Training requested before a network exists")
            return jsonify({'error': 'Network not initialized'}), 404

        data = read_json_object()
        if data is None:
            return jsonify({'error': 'Request body must be a JSON object'}), 400
        epochs = parse_epochs(data, state.epochs)
        if epochs is None:
            return jsonify({'error': 'epochs must be a positive integer'}), 400

        if state.active_job() is not None:
            return jsonify({'error': 'A training job is already running'}), 409

        job_id = start_training_job(socketio, state, 'continue', epochs)
        return jsonify({
            'job_id': job_id,
            'status': 'training_started'
        }), 202

    @app.route('/api/training/<job_id>', methods=['GET'])
    def get_training_status(job_id: str):
        """Get the current status of a training job."""
        if job_id not in state.training_jobs:
            logger.warning(f"Status requested for non-existent job: {job_id}")
            return jsonify({'error': 'Training job not found'}), 404
        return jsonify(state.training_jobs[job_id]), 200

    @app.route('/api/network/save', methods=['POST'])
    def save_network_endpoint():
        """Write the current network to the model file."""
        if state.network is None:
            return jsonify({'error': 'No network to save'}), 404
        if state.network_busy():
            return jsonify({'error': 'Network is training'}), 409

        if not save_network(state.network, state.model_path):
            return jsonify({'error': 'Error saving network'}), 500

        return jsonify({
            'model_path': state.model_path,
            'message': 'Neural network successfully saved'
        }), 200

    @app.route('/api/network/load', methods=['POST'])
    def load_network_endpoint():
        """Replace the current network with the one in the model file."""
        if state.active_job() is not None:
            return jsonify({'error': 'A training job is already running'}), 409

        net = load_network(state.model_path)
        if net is None:
            return jsonify({
                'error': f"Could not load network from '{state.model_path}'"
            }), 404

        state.network = net
        return jsonify({
            'model_path': state.model_path,
            'architecture': net.sizes
        }), 200

    @app.route('/api/recognize', methods=['POST'])
    def recognize_digit():
        """
        Recognize a digit drawn on the grid.

        Request body, one of:
            {'grid': [[0, 1, ...], ...]}   # 10x10 rows or 100 values
            {'cells': '2,2 3,4'}           # col,row pairs to switch on

        Returns:
            JSON with predicted_digit, confidence and per-digit confidences
        """
        if state.network is None:
            return jsonify({'error': 'Neural network is not initialized'}), 409
        if state.network_busy():
            return jsonify({'error': 'Network is training'}), 409

        data = read_json_object()
        if data is None:
            return jsonify({'error': 'Request body must be a JSON object'}), 400

        if 'grid' in data:
            try:
                grid = Grid.from_input(data['grid'])
            except (TypeError, ValueError) as e:
                return jsonify({'error': str(e)}), 400
        elif isinstance(data.get('cells'), str):
            grid = Grid()
            update = grid.activate(data['cells'])
            if not update.ok:
                return jsonify({'error': 'Invalid cells', 'details': update.errors}), 400
        else:
            return jsonify({'error': "Provide 'grid' or 'cells'"}), 400

        x = grid.to_input()
        try:
            output = state.network.feedforward(x)
        except InvalidInputShape as e:
            return jsonify({'error': str(e)}), 400

        predicted_digit = int(np.argmax(output))
        return jsonify({
            'predicted_digit': predicted_digit,
            'confidence': float(output[predicted_digit]),
            'confidences': array_to_float_list(output),
            'grid': grid.render()
        }), 200

    @app.route('/api/patterns/<int:digit>', methods=['GET'])
    def get_pattern(digit: int):
        """Return the canonical training pattern for ``digit``."""
        if not 0 <= digit < NUM_CLASSES:
            return jsonify({'error': 'Digit must be between 0 and 9'}), 404

        pattern = create_digit_pattern(digit)
        return jsonify({
            'digit': digit,
            'pattern': array_to_float_list(pattern),
            'grid': Grid.from_input(pattern).render(),
            'image_data': create_grid_image(pattern, f"Digit {digit}")
        }), 200


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(
    model_path: Optional[str] = None,
    epochs: Optional[int] = None,
    async_mode: str = 'gevent',
    autoload: bool = True
) -> Flask:
    """
    Build the Flask app and its SocketIO server.

    Args:
        model_path: Network file; defaults to GRIDNET_MODEL_PATH
        epochs: Default training epochs; defaults to GRIDNET_EPOCHS
        async_mode: SocketIO async mode used for background training
        autoload: Load the network file at startup, or train a new
            network in the background if it cannot be loaded

    Returns:
        The Flask app; its SocketIO server is ``app.extensions['socketio']``
    """
    state = NetworkState(
        model_path if model_path is not None else config.get_model_path(),
        epochs if epochs is not None else config.get_epochs()
    )

    app = Flask(__name__)
    CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin
    app.extensions['gridnet'] = state

    production = config.is_production()

    # SocketIO enables real-time communication (WebSockets) for training updates
    socketio = SocketIO(
        app,
        cors_allowed_origins="*",
        async_mode=async_mode,
        logger=not production,
        engineio_logger=not production,
        ping_timeout=60,
        ping_interval=25
    )

    register_routes(app, socketio, state)

    if autoload:
        state.network = load_network(state.model_path)
        if state.network is None:
            logger.info("No usable network file, training a new network")
            start_training_job(socketio, state, 'create', state.epochs)

    return app


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    config.configure_logging()

    port = config.get_port()
    app = create_app()
    socketio = app.extensions['socketio']

    logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not config.is_production(),
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise

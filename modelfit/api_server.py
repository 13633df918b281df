"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for model fitting.

This module provides endpoints for:
- Creating and managing feed-forward networks
- Training networks on posted data with real-time progress updates via WebSockets
- Evaluating networks and charting the fitted model
- Persisting networks to/from SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- SQLite for network persistence
"""

import os
import sys
import uuid
import math
import logging
from typing import Dict, Any, List, Optional

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from modelfit.activation import ActivationConfig
from modelfit.exceptions import NetworkConfigError, NetworkError
from modelfit.fitting import (
    FitSettings,
    STATUS_DIVERGED,
    build_network,
    fit_network,
    prepare_training_set
)
from modelfit.network import Network
from modelfit.plotting import plot_error_history, plot_fit
from modelfit.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks,
    get_network_metadata
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep our logs visible
    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        # Keep our logs at INFO level for visibility in production
        logging.getLogger('modelfit').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

MODEL_DIR = os.getenv('MODEL_DIR', 'models')
MODEL_MAX_AGE_DAYS = float(os.getenv('MODEL_MAX_AGE_DAYS', '2'))

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

is_production = os.getenv('FLASK_ENV') == 'production'

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}
ACTIVE_JOB_STATUSES = {'pending', 'training'}


def _network_info(net: Network, trained: bool = False,
                  net_error: Optional[float] = None) -> Dict[str, Any]:
    return {
        'network': net,
        'architecture': net.layer_sizes,
        'trained': trained,
        'net_error': net_error,
        # Filled in by training
        'error_history': [],
        'training_data': None,
        'scale_factor': 1.0
    }


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted. This keeps active_networks in sync with
    the database.
    """
    saved_networks = list_saved_networks(MODEL_DIR)

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id, MODEL_DIR)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue
        active_networks[network_id] = _network_info(
            net, net_info['trained'], net_info['net_error']
        )
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


reload_saved_networks()

# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Background task that runs immediately on startup, then every 24 hours to:
    - Delete networks older than MODEL_MAX_AGE_DAYS from the database
    - Sync in-memory networks with the database
    - Remove completed/failed training jobs from memory
    """
    logger.info("Cleanup task started")

    while True:
        try:
            run_cleanup(MODEL_MAX_AGE_DAYS)
            logger.info("Next cleanup scheduled in 24 hours")
            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            # Wait before retrying on error
            gevent.sleep(3600)


def run_cleanup(days: float) -> int:
    """
    Delete old networks from the database and drop them from memory.

    Returns:
        int: Number of networks deleted, or -1 on a database error
    """
    logger.info(f"Cleaning up networks older than {days} day(s); "
                f"{len(active_networks)} in memory")

    deleted_count = delete_old_networks(days=days, model_dir=MODEL_DIR)

    if deleted_count > 0:
        # Remove any networks from memory that no longer exist in database
        saved_ids = {net['network_id'] for net in list_saved_networks(MODEL_DIR)}
        stale = [
            nid for nid, info in active_networks.items()
            if info['trained'] and nid not in saved_ids
        ]
        for nid in stale:
            del active_networks[nid]
            logger.info(f"Removed network {nid} from memory (deleted from database)")
    elif deleted_count == 0:
        logger.info("Cleanup completed: no old networks found to delete")
    else:
        logger.error("Cleanup returned error code")

    cleanup_finished_training_jobs()
    return deleted_count


def cleanup_finished_training_jobs() -> None:
    """
    Remove completed or failed training jobs from memory.

    This prevents the training_jobs dictionary from growing indefinitely.
    Only removes jobs that are no longer active (completed or failed).
    """
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    Uses gevent.spawn() directly instead of socketio.start_background_task()
    to ensure it works both when running directly and under gunicorn.
    Calling it more than once has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


# Start the cleanup task when module is loaded (works with gunicorn)
start_cleanup_task()


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in np.asarray(array).flatten()]


def json_number(value: Optional[float]) -> Optional[float]:
    """JSON has no NaN or Infinity; report them as null."""
    if value is None or not math.isfinite(value):
        return None
    return float(value)


def network_from_request(data: Dict[str, Any]) -> Network:
    """
    Build a network from a creation request.

    Request body (all optional):
        {
            'num_inputs': 1,
            'num_outputs': 1,
            'output_activation': {'kind': 'linear', 'slope': 1, 'amplify': 1},
            'hidden_layers': [{'units': 4, 'kind': 'unipolar', 'slope': 1}],
            'init_range': 2.0,
            'seed': 42
        }

    Without 'hidden_layers' a single hidden layer is built from the
    fitting defaults.

    Raises:
        NetworkConfigError: If the topology is invalid
        ValueError, TypeError: If a value has the wrong type
    """
    num_inputs = int(data.get('num_inputs', 1))
    num_outputs = int(data.get('num_outputs', 1))
    seed = data.get('seed')
    if seed is not None:
        seed = int(seed)

    settings = FitSettings()
    if 'output_activation' in data:
        settings.output_activation = ActivationConfig.from_dict(data['output_activation'])
    if 'init_range' in data:
        settings.init_range = float(data['init_range'])

    if num_inputs < 1 or num_outputs < 1:
        raise NetworkConfigError("num_inputs and num_outputs must be at least 1")

    hidden_layers = data.get('hidden_layers')
    if hidden_layers is None:
        settings.validate()
        return build_network(num_inputs, num_outputs, settings, seed=seed)

    if not isinstance(hidden_layers, list) or not hidden_layers:
        raise NetworkConfigError("hidden_layers must be a non-empty list")

    net = Network(num_inputs, num_outputs, settings.output_activation, seed=seed)
    for layer in hidden_layers:
        net.add_layer(int(layer.get('units', 0)), ActivationConfig.from_dict(layer),
                      settings.init_range)
    return net


def find_active_job(network_id: str) -> Optional[str]:
    """Return the id of the pending or running training job of a network, if any."""
    for job_id, job_info in training_jobs.items():
        if job_info['network_id'] == network_id and job_info['status'] in ACTIVE_JOB_STATUSES:
            return job_id
    return None


def get_active_network(network_id: str) -> Optional[Dict[str, Any]]:
    """Return the in-memory entry of a network, loading it from the database if needed."""
    if network_id in active_networks:
        return active_networks[network_id]

    net = load_network(network_id, MODEL_DIR)
    if net is None:
        return None

    metadata = get_network_metadata(network_id, MODEL_DIR) or {}
    active_networks[network_id] = _network_info(
        net, metadata.get('trained', False), metadata.get('net_error')
    )
    return active_networks[network_id]


def describe_entry(network_id: str, info: Dict[str, Any], status: str) -> Dict[str, Any]:
    return {
        'network_id': network_id,
        'architecture': info['architecture'],
        'trained': info['trained'],
        'net_error': json_number(info['net_error']),
        'status': status
    }


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """
    Return server status and statistics.

    Returns counts of active networks and training jobs that are
    currently in progress (status='pending' or 'training').
    """
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in ACTIVE_JOB_STATUSES
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body: see network_from_request().

    Returns:
        JSON with network_id, architecture, the network description and status
    """
    data = request.get_json(silent=True) or {}

    try:
        net = network_from_request(data)
    except (NetworkConfigError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Invalid network requested: {e}")
        return jsonify({'error': f'Invalid network: {e}'}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = _network_info(net)

    logger.info(f"Created network {network_id} with architecture {net.layer_sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.layer_sizes,
        'network': net.describe(),
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>', methods=['GET'])
def get_network(network_id: str):
    """Return the description of a network."""
    info = get_active_network(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    result = describe_entry(network_id, info, 'in_memory')
    result['network'] = info['network'].describe()
    return jsonify(result), 200


@app.route('/api/networks/<network_id>/response', methods=['POST'])
def get_network_response(network_id: str):
    """
    Evaluate a network on one input vector.

    Request body:
        {'inputs': [0.5, 0.2]}

    Returns:
        JSON with the network outputs
    """
    info = get_active_network(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    inputs = data.get('inputs')
    if not isinstance(inputs, list):
        return jsonify({'error': 'inputs must be a list of numbers'}), 400

    try:
        outputs = info['network'].get_response(inputs)
    except (ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'inputs': inputs,
        'outputs': array_to_float_list(outputs)
    }), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'inputs': [[x1], [x2], ...] or [x1, x2, ...],
            'targets': [[y1], [y2], ...] or [y1, y2, ...],
            'learning_constant': 0.01,
            'momentum': 0.0,
            'min_net_error': 5.0,
            'num_iterations': 1000,
            'scale_factor': 1000.0,
            'seed': 42
        }

    Only inputs and targets are required.

    Returns:
        JSON with job_id, network_id, and status
    """
    info = get_active_network(network_id)
    if info is None:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    active_job = find_active_job(network_id)
    if active_job is not None:
        logger.warning(f"Network {network_id} is already being trained by job {active_job}")
        return jsonify({
            'error': 'The network is already being trained',
            'job_id': active_job
        }), 409

    data = request.get_json(silent=True) or {}
    if 'inputs' not in data or 'targets' not in data:
        return jsonify({'error': 'inputs and targets are required'}), 400

    net = info['network']
    try:
        settings = FitSettings.from_dict(data)
        settings.validate()
        seed = data.get('seed')
        if seed is not None:
            seed = int(seed)
        inputs, targets = prepare_training_set(data['inputs'], data['targets'])
    except (NetworkConfigError, ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    if len(inputs) == 0:
        return jsonify({'error': 'The training set is empty'}), 400
    if inputs.shape[1] != net.num_inputs or targets.shape[1] != net.num_outputs:
        return jsonify({
            'error': f'Data has {inputs.shape[1]} inputs and {targets.shape[1]} '
                     f'targets per example; the network expects '
                     f'{net.num_inputs} and {net.num_outputs}'
        }), 400

    job_id = str(uuid.uuid4())

    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': settings.num_iterations
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"{len(inputs)} examples, iterations={settings.num_iterations}, "
        f"lc={settings.learning_constant}, momentum={settings.momentum}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_network_task,
        network_id, job_id, inputs, targets, settings, seed
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    inputs: np.ndarray,
    targets: np.ndarray,
    settings: FitSettings,
    seed: Optional[int] = None
) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket as training progresses. The
    network kept in memory is the one reported by the fitting session:
    the converged network, or the minimum-error network otherwise.
    """
    def on_epoch_complete(data: Dict[str, Any]) -> None:
        """Called after each training epoch to send progress updates."""
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress
        training_jobs[job_id]['net_error'] = data['net_error']

        # Only every report_interval epochs is sent to clients
        if data['epoch'] % settings.report_interval and data['epoch'] != data['total_epochs']:
            return

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'net_error': data['net_error'],
            'min_error': data['min_error'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress
        })

        # Let gevent send the message immediately
        gevent.sleep(0)

    def yield_to_other_tasks():
        gevent.sleep(0)

    try:
        info = active_networks.get(network_id)
        if info is None:
            raise NetworkError(f"Network {network_id} was deleted before training started")
        net = info['network']

        logger.info(f"Starting training for job {job_id}")

        result = fit_network(
            net,
            inputs,
            targets,
            settings,
            seed=seed,
            callback=on_epoch_complete,
            yield_func=yield_to_other_tasks
        )

        if active_networks.get(network_id) is not info:
            raise NetworkError(f"Network {network_id} was deleted during training")

        info['error_history'] = result.error_history
        info['training_data'] = (inputs, targets)
        info['scale_factor'] = settings.scale_factor

        if result.network is None:
            raise NetworkConfigError(
                f"Training diverged at iteration {result.iterations} "
                f"(network error {result.net_error})"
            )

        net_error = result.min_error
        info['network'] = result.network
        info['trained'] = True
        info['net_error'] = net_error

        training_jobs[job_id].update({
            'status': 'completed',
            'result': result.status,
            'iterations': result.iterations,
            'net_error': json_number(net_error),
            'progress': 100
        })

        save_network(result.network, network_id, model_dir=MODEL_DIR,
                     trained=True, net_error=net_error)

        if result.status == STATUS_DIVERGED:
            logger.warning(
                f"Training for job {job_id} diverged; keeping the network "
                f"with error {net_error:.5g}"
            )
        logger.info(
            f"Training completed for job {job_id}: {result.status} after "
            f"{result.iterations} iterations, error {net_error:.5g}"
        )

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'result': result.status,
            'iterations': result.iterations,
            'net_error': json_number(net_error),
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """
    Get the current status of a training job.

    Finished jobs stay available until the next cleanup run.
    """
    if job_id in training_jobs:
        job = dict(training_jobs[job_id])
        if 'net_error' in job:
            job['net_error'] = json_number(job['net_error'])
        return jsonify(job), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        describe_entry(nid, info, 'in_memory')
        for nid, info in active_networks.items()
    ]

    # Get saved networks, excluding duplicates already in memory
    in_memory_ids = set(active_networks.keys())
    saved_only = []
    for net in list_saved_networks(MODEL_DIR):
        if net['network_id'] not in in_memory_ids:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    deleted_from_memory = False
    if network_id in active_networks:
        del active_networks[network_id]
        deleted_from_memory = True

    deleted_from_disk = delete_network(network_id, MODEL_DIR)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete all networks from both memory and disk."""
    saved_ids = [net['network_id'] for net in list_saved_networks(MODEL_DIR)]
    all_network_ids = set(active_networks.keys()) | set(saved_ids)

    deleted_from_memory_count = 0
    deleted_from_disk_count = 0

    for network_id in all_network_ids:
        if network_id in active_networks:
            del active_networks[network_id]
            deleted_from_memory_count += 1

        if delete_network(network_id, MODEL_DIR):
            deleted_from_disk_count += 1

    logger.info(
        f"Deleted all networks: {len(all_network_ids)} total, "
        f"{deleted_from_memory_count} from memory, {deleted_from_disk_count} from disk"
    )

    return jsonify({
        'deleted_count': len(all_network_ids),
        'deleted_from_memory': deleted_from_memory_count,
        'deleted_from_disk': deleted_from_disk_count,
        'message': f'Successfully deleted {len(all_network_ids)} network(s)'
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 2}  # defaults to MODEL_MAX_AGE_DAYS

    Returns:
        JSON with deleted_count, days, and message
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', MODEL_MAX_AGE_DAYS)

    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = run_cleanup(days)

    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200


# ============================================================================
# CHART ENDPOINTS
# ============================================================================

@app.route('/api/networks/<network_id>/error_plot', methods=['GET'])
def get_error_plot(network_id: str):
    """Chart of the network error over the last training run."""
    info = get_active_network(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    if not info['error_history']:
        return jsonify({'error': 'The network has no training history'}), 404

    return jsonify({
        'network_id': network_id,
        'iterations': len(info['error_history']),
        'image_data': plot_error_history(info['error_history'])
    }), 200


@app.route('/api/networks/<network_id>/fit_plot', methods=['GET'])
def get_fit_plot(network_id: str):
    """
    Chart of the last training data with the model response drawn over it.

    Query parameters (optional): x_label, y_label
    """
    info = get_active_network(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    if info['training_data'] is None:
        return jsonify({'error': 'The network has no training data'}), 404

    net = info['network']
    if net.num_inputs != 1 or net.num_outputs != 1:
        return jsonify({
            'error': 'Fit plots are only available for single-input, '
                     'single-output networks'
        }), 400

    inputs, targets = info['training_data']
    image = plot_fit(
        net,
        inputs,
        targets,
        scale_factor=info['scale_factor'],
        x_label=request.args.get('x_label', 'x'),
        y_label=request.args.get('y_label', 'y')
    )

    return jsonify({'network_id': network_id, 'image_data': image}), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    # Check if running in cloud environment (Railway, etc.)
    is_cloud = bool(os.environ.get('RAILWAY_STATIC_URL') or os.environ.get('PORT'))
    port = int(os.environ.get('PORT', 8000))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

    start_cleanup_task()

    # Start the server with WebSocket support
    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_cloud,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            logger.info("You can use: pkill -f 'python -m modelfit.api_server'")
            sys.exit(1)
        else:
            raise

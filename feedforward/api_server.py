"""
api_server.py
~~~~~~~~~~~~~

Flask REST API for running networks inside another program.

This module provides endpoints for:
- Creating networks from a layer configuration
- Running forward passes, predictions, accuracy and loss on posted batches
- Saving networks to and loading them from the SQLite registry
- Exporting a network in the plain-text format

Configuration comes from the environment:
- LOG_LEVEL: logging level name (default INFO)
- FLASK_ENV: 'production' quiets third-party logs and disables debug
- PORT: port for ``python -m feedforward.api_server`` (default 8000)
- MODEL_DIR: directory of the registry database (default 'models')
"""

import logging
import os
import sys
import uuid
from typing import Any, Dict, Tuple

import numpy as np
from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from feedforward import serialization
from feedforward.errors import NetworkError, PreconditionError
from feedforward.model_persistence import (
    delete_network,
    delete_old_networks,
    fetch_network,
    get_network_metadata,
    list_saved_networks,
    store_network,
)
from feedforward.network import Network, cross_entropy_loss

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    In production, werkzeug's per-request lines are silenced while the
    package's own loggers stay at INFO.
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if os.getenv('FLASK_ENV') == 'production':
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('feedforward').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
app.config['MODEL_DIR'] = os.getenv('MODEL_DIR', 'models')
CORS(app, resources={r"/api/*": {"origins": "*"}})

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}


class RequestError(Exception):
    """A request body is missing a field or has one of the wrong type."""


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _model_dir() -> str:
    return app.config['MODEL_DIR']


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise RequestError(f"'{key}' is required")
    return data[key]


def _not_found(network_id: str) -> Tuple[Response, int]:
    logger.warning(f"Request for non-existent network: {network_id}")
    return jsonify({'error': 'Network not found'}), 404


def _rejected(e: Exception) -> Tuple[Response, int]:
    """400 response for a bad request body or a precondition failure."""
    logger.warning(f"Rejected request: {e}")
    body = {'error': str(e)}
    if isinstance(e, PreconditionError):
        body['kind'] = e.kind.value
    return jsonify(body), 400


def _network_summary(network_id: str, info: Dict[str, Any]) -> Dict[str, Any]:
    net = info['network']
    return {
        'network_id': network_id,
        'architecture': net.sizes,
        'activations': (
            [a.serial_name for a in net.hidden_activations]
            + [net.output_activation.serial_name]
        ),
        'accuracy': info['accuracy'],
        'status': 'in_memory'
    }


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and the number of networks in memory."""
    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks)
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body:
        {
            'num_features': 4,
            'hidden_sizes': [8],              # optional, default []
            'hidden_activations': ['relu'],   # optional, default []
            'num_classes': 3,
            'output_activation': 'softmax',   # optional, default softmax
            'seed': 0                         # optional
        }

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request.get_json(silent=True) or {}
    seed = data.get('seed')
    if seed is not None and not isinstance(seed, int):
        return jsonify({'error': 'seed must be an integer'}), 400
    for key in ('hidden_sizes', 'hidden_activations'):
        if not isinstance(data.get(key, []), list):
            return jsonify({'error': f"'{key}' must be a list"}), 400

    try:
        net = Network(
            _require(data, 'num_features'),
            data.get('hidden_sizes', []),
            data.get('hidden_activations', []),
            _require(data, 'num_classes'),
            data.get('output_activation', 'softmax'),
            rng=np.random.default_rng(seed)
        )
    except (RequestError, PreconditionError) as e:
        return _rejected(e)

    network_id = str(uuid.uuid4())
    active_networks[network_id] = {'network': net, 'accuracy': None}
    logger.info(f"Created network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'status': 'created'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all networks, in memory first, then saved-only ones."""
    in_memory = [
        _network_summary(nid, info) for nid, info in active_networks.items()
    ]

    saved_only = []
    for net in list_saved_networks(_model_dir()):
        if net['network_id'] not in active_networks:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")
    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>/forward', methods=['POST'])
def forward_endpoint(network_id: str):
    """
    Run a forward pass.

    Request body:
        {'inputs': [[...], ...]}  # one row per example

    Returns:
        JSON with the output layer's rows
    """
    if network_id not in active_networks:
        return _not_found(network_id)

    net = active_networks[network_id]['network']
    data = request.get_json(silent=True) or {}
    try:
        output = net.forward_pass(_require(data, 'inputs'))
    except (RequestError, PreconditionError) as e:
        return _rejected(e)

    return jsonify({
        'network_id': network_id,
        'outputs': output.tolist()
    }), 200


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict_endpoint(network_id: str):
    """Forward pass followed by argmax; returns one class index per row."""
    if network_id not in active_networks:
        return _not_found(network_id)

    net = active_networks[network_id]['network']
    data = request.get_json(silent=True) or {}
    try:
        net.forward_pass(_require(data, 'inputs'))
    except (RequestError, PreconditionError) as e:
        return _rejected(e)

    return jsonify({
        'network_id': network_id,
        'predictions': [int(p) for p in net.predict()]
    }), 200


@app.route('/api/networks/<network_id>/accuracy', methods=['POST'])
def accuracy_endpoint(network_id: str):
    """
    Score the network against one-hot labels.

    Request body:
        {'inputs': [[...], ...], 'classes': [[0, 1], ...]}

    The accuracy is remembered and stored with the network on save.
    """
    if network_id not in active_networks:
        return _not_found(network_id)

    info = active_networks[network_id]
    data = request.get_json(silent=True) or {}
    try:
        accuracy = info['network'].accuracy(
            _require(data, 'inputs'),
            _require(data, 'classes')
        )
    except (RequestError, PreconditionError) as e:
        return _rejected(e)

    info['accuracy'] = accuracy
    logger.info(f"Network {network_id} accuracy: {accuracy:.2%}")

    return jsonify({'network_id': network_id, 'accuracy': accuracy}), 200


@app.route('/api/networks/<network_id>/loss', methods=['POST'])
def loss_endpoint(network_id: str):
    """
    Cross-entropy loss of the network's output on ``inputs``.

    Request body:
        {'inputs': [...], 'classes': [...], 'regularization_strength': 0.0}
    """
    if network_id not in active_networks:
        return _not_found(network_id)

    net = active_networks[network_id]['network']
    data = request.get_json(silent=True) or {}
    strength = data.get('regularization_strength', 0.0)
    if not isinstance(strength, (int, float)) or strength < 0:
        return jsonify({
            'error': 'regularization_strength must be a non-negative number'
        }), 400

    try:
        prediction = net.forward_pass(_require(data, 'inputs'))
        loss = cross_entropy_loss(
            net,
            prediction,
            _require(data, 'classes'),
            strength
        )
    except (RequestError, PreconditionError) as e:
        return _rejected(e)

    return jsonify({'network_id': network_id, 'loss': loss}), 200


@app.route('/api/networks/<network_id>/save', methods=['POST'])
def save_endpoint(network_id: str):
    """Store an in-memory network in the registry."""
    if network_id not in active_networks:
        return _not_found(network_id)

    info = active_networks[network_id]
    if not store_network(info['network'], network_id, _model_dir(), info['accuracy']):
        return jsonify({'error': 'Failed to save network'}), 500

    return jsonify({
        'network_id': network_id,
        'metadata': get_network_metadata(network_id, _model_dir())
    }), 200


@app.route('/api/networks/<network_id>/load', methods=['POST'])
def load_endpoint(network_id: str):
    """Load a stored network into memory, replacing any in-memory copy."""
    net = fetch_network(network_id, _model_dir())
    if net is None:
        return _not_found(network_id)

    metadata = get_network_metadata(network_id, _model_dir()) or {}
    old = active_networks.get(network_id)
    if old is not None:
        old['network'].destroy()
    active_networks[network_id] = {
        'network': net,
        'accuracy': metadata.get('accuracy')
    }
    logger.info(f"Loaded network {network_id} into memory")

    return jsonify(_network_summary(network_id, active_networks[network_id])), 200


@app.route('/api/networks/<network_id>/export', methods=['GET'])
def export_endpoint(network_id: str):
    """Return the network in the plain-text format."""
    if network_id not in active_networks:
        return _not_found(network_id)

    try:
        text = serialization.dumps(active_networks[network_id]['network'])
    except NetworkError as e:
        logger.exception(f"Error exporting network {network_id}: {e}")
        return jsonify({'error': str(e)}), 500

    return Response(text, mimetype='text/plain'), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and the registry."""
    deleted_from_memory = False
    info = active_networks.pop(network_id, None)
    if info is not None:
        info['network'].destroy()
        deleted_from_memory = True

    deleted_from_disk = delete_network(network_id, _model_dir())

    if not deleted_from_memory and not deleted_from_disk:
        return _not_found(network_id)

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")
    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Delete stored networks older than ``days`` (default 2).

    In-memory networks are not touched.
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', 2)

    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = delete_old_networks(days=days, model_dir=_model_dir())
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")
    return jsonify({
        'deleted_count': deleted_count,
        'days': days
    }), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    is_production = os.getenv('FLASK_ENV') == 'production'
    logger.info(f"Starting server at http://localhost:{port}/")

    try:
        app.run(host='0.0.0.0', port=port, debug=not is_production, use_reloader=False)
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        raise

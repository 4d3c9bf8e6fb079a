"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite registry of named networks.

Each row keeps a network's text serialization next to queryable metadata
(layer sizes, activation names, accuracy, timestamps), so a host program
can list and inspect stored networks without parsing every one of them.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from feedforward import serialization
from feedforward.errors import NetworkError
from feedforward.network import Network

logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = 'models'
DB_FILENAME = 'networks.db'


class ModelDatabase:
    """
    Manages the SQLite file holding stored networks.

    The ``networks`` table stores:
    - architecture and activation names as JSON
    - the network itself in the plain-text format of ``serialization``
    - an optional accuracy score and creation/update timestamps
    """

    def __init__(self, db_path: str = os.path.join(DEFAULT_MODEL_DIR, DB_FILENAME)):
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success and rolls back if the block raises.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    activations TEXT NOT NULL,
                    network_data TEXT NOT NULL,
                    accuracy REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    def save_network_to_db(
        self,
        network: Network,
        network_id: str,
        accuracy: Optional[float] = None
    ) -> bool:
        """
        Insert or replace a stored network.

        Replacing keeps the original ``created_at``.

        Args:
            network: Network to store
            network_id: Unique identifier
            accuracy: Evaluation accuracy (0.0 to 1.0), if known

        Returns:
            bool: True once the row is written

        Raises:
            ValueError: If accuracy is out of range
        """
        if accuracy is not None and not 0.0 <= accuracy <= 1.0:
            raise ValueError(
                f"Accuracy must be between 0.0 and 1.0, got {accuracy}"
            )

        network_data = serialization.dumps(network)
        architecture_json = json.dumps(network.sizes)
        activations_json = json.dumps(
            [a.serial_name for a in network.hidden_activations]
            + [network.output_activation.serial_name]
        )

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, architecture, activations, network_data, accuracy)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    activations = excluded.activations,
                    network_data = excluded.network_data,
                    accuracy = excluded.accuracy,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                architecture_json,
                activations_json,
                network_data,
                accuracy
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.sizes}, accuracy={accuracy}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[Network]:
        """
        Rebuild a stored network.

        Returns:
            Network or None if no row has this id

        Raises:
            NetworkFormatError: If the stored text is corrupt
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

        if row is None:
            logger.warning(f"Network '{network_id}' not found")
            return None

        network = serialization.loads(row['network_data'])
        logger.info(f"Loaded network '{network_id}'")
        return network

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        architecture = json.loads(row['architecture'])
        return {
            'network_id': row['network_id'],
            'architecture': architecture,
            'activations': json.loads(row['activations']),
            'weights_shape': [
                [architecture[i], architecture[i + 1]]
                for i in range(len(architecture) - 1)
            ],
            'biases_shape': [
                [1, architecture[i + 1]]
                for i in range(len(architecture) - 1)
            ],
            'accuracy': row['accuracy'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """Metadata for every stored network, newest first."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, architecture, activations, accuracy,
                       created_at, updated_at
                FROM networks
                ORDER BY created_at DESC, network_id
            ''')
            networks = [self._row_to_metadata(row) for row in cursor.fetchall()]

        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """Metadata for one network without parsing its parameters."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, architecture, activations, accuracy,
                       created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))
            row = cursor.fetchone()

        if row is None:
            logger.warning(f"Metadata for network '{network_id}' not found")
            return None
        return self._row_to_metadata(row)

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Remove a stored network.

        Returns:
            bool: True if a row was deleted
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted network '{network_id}'")
        else:
            logger.warning(f"Could not delete network '{network_id}': not found")
        return deleted

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Remove networks created more than ``days`` days ago.

        Returns:
            int: Number of rows deleted

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM networks "
                "WHERE julianday('now') - julianday(created_at) > ?",
                (days,)
            )
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted


_databases: Dict[str, ModelDatabase] = {}


def _get_db(model_dir: str) -> ModelDatabase:
    """One ModelDatabase per directory, created on first use."""
    db_path = os.path.join(model_dir, DB_FILENAME)
    if db_path not in _databases:
        _databases[db_path] = ModelDatabase(db_path=db_path)
    return _databases[db_path]


def _valid_id(network_id: Any) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def store_network(
    network: Network,
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR,
    accuracy: Optional[float] = None
) -> bool:
    """
    Store a network in the registry under ``model_dir``.

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = Network(784, [30], ['sigmoid'], 10, 'softmax')
        >>> store_network(net, "digits")
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).save_network_to_db(network, network_id, accuracy)
    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except NetworkError as e:
        logger.error(f"Network error saving '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False


def fetch_network(
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR
) -> Optional[Network]:
    """
    Load a stored network.

    Returns:
        Network or None if it is missing or cannot be parsed
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).load_network_from_db(network_id)
    except NetworkError as e:
        logger.error(f"Stored network '{network_id}' is unreadable: {e}")
        return None
    except sqlite3.Error as e:
        logger.error(f"Database error loading network '{network_id}': {e}")
        return None


def list_saved_networks(model_dir: str = DEFAULT_MODEL_DIR) -> List[Dict[str, Any]]:
    """Metadata for every stored network; empty on database errors."""
    try:
        return _get_db(model_dir).list_networks_from_db()
    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []


def get_network_metadata(
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR
) -> Optional[Dict[str, Any]]:
    """Metadata for one stored network, or None."""
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).get_network_metadata_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error getting metadata for '{network_id}': {e}")
        return None
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error getting metadata for '{network_id}': {e}")
        return None


def delete_network(network_id: str, model_dir: str = DEFAULT_MODEL_DIR) -> bool:
    """Delete a stored network; False if missing or on database errors."""
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).delete_network_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False


def delete_old_networks(days: int = 2, model_dir: str = DEFAULT_MODEL_DIR) -> int:
    """
    Delete networks older than ``days`` days.

    Returns:
        int: Number deleted, or -1 on database errors

    Raises:
        ValueError: If days is negative
    """
    try:
        return _get_db(model_dir).delete_old_networks_from_db(days)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1
